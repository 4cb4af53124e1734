"""
Inference domain package.

This package contains:

- the model session manager (artifact decoding, tokenizer and ONNX session)
- the tensor codec and the single-pass inference runner
- the request/response messages and the session-holding inference service
"""

from .codec import EncodedBatch, cast_attention_mask, encode_batch
from .messages import (
    Ack,
    ErrorResponse,
    InferenceResult,
    RunInference,
    UpdateSettings,
)
from .runner import InferenceRunner
from .service import InferenceService, ServiceChannel
from .session import ModelSessionManager, Session, SessionState

__all__ = [
    "Ack",
    "EncodedBatch",
    "ErrorResponse",
    "InferenceResult",
    "InferenceRunner",
    "InferenceService",
    "ModelSessionManager",
    "RunInference",
    "ServiceChannel",
    "Session",
    "SessionState",
    "UpdateSettings",
    "cast_attention_mask",
    "encode_batch",
]
