"""Single forward pass over the manager's Ready session."""

from __future__ import annotations

import time

import numpy as np
import structlog

from common.errors import ApplicationError

from .session import ModelSessionManager

log = structlog.get_logger(__name__)

OUTPUT_NAME = "output"


class InferenceRunner:
    """Evaluates prepared tensors; holds no state of its own."""

    def __init__(self, manager: ModelSessionManager):
        self.manager = manager

    def run(self, input_ids: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
        """
        Return the ``[batch, num_classes]`` probability matrix.

        Raises `SessionNotReady` if the manager has no Ready session.
        """
        session = self.manager.require_session().inference_session
        output_names = [output.name for output in session.get_outputs()]
        output_name = OUTPUT_NAME if OUTPUT_NAME in output_names else output_names[0]

        start = time.perf_counter()
        (probabilities,) = session.run(
            [output_name],
            {"input_ids": input_ids, "attention_mask": attention_mask},
        )
        probabilities = np.asarray(probabilities)
        log.debug(
            "Inference finished",
            batch_size=input_ids.shape[0],
            sequence_length=input_ids.shape[1],
            elapsed_ms=round((time.perf_counter() - start) * 1000, 1),
        )

        if probabilities.ndim != 2 or probabilities.shape[0] != input_ids.shape[0]:
            raise ApplicationError(
                f"Model output has shape {probabilities.shape}; "
                f"expected ({input_ids.shape[0]}, num_classes)."
            )
        return probabilities
