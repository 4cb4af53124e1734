"""
Request/response messages exchanged with the inference service.

``RunInference`` is answered with ``InferenceResult`` or ``ErrorResponse``;
``UpdateSettings`` with ``Ack`` or ``ErrorResponse``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import numpy as np

from common.model_settings import ModelSettings


@dataclass(frozen=True)
class RunInference:
    data: list[str]


@dataclass(frozen=True)
class UpdateSettings:
    data: ModelSettings


@dataclass(frozen=True)
class InferenceResult:
    data: np.ndarray


@dataclass(frozen=True)
class Ack:
    message: str = "Settings updated"


@dataclass(frozen=True)
class ErrorResponse:
    message: str


Request = Union[RunInference, UpdateSettings]
Response = Union[InferenceResult, Ack, ErrorResponse]
