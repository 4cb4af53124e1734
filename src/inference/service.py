"""
Inference Service
=================

The session-holding execution context and the channel used to reach it.

`InferenceService` runs every request on a single dedicated worker thread
that owns the `ModelSessionManager` and `InferenceRunner`. Because there is
only one worker, a settings update that triggers a reload is queued behind
any inference call already in flight and never runs concurrently with it.

Failures raised while handling a request are converted into an
`ErrorResponse` carrying the message; they are application-level errors.
`ServiceChannel` is the requesting side: when the service cannot accept or
answer a request at all, it raises `TransportError` instead.
"""

from __future__ import annotations

from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

import numpy as np
import structlog

from common.errors import SessionNotReady, TransportError

from .codec import encode_batch
from .messages import (
    Ack,
    ErrorResponse,
    InferenceResult,
    Request,
    Response,
    RunInference,
    UpdateSettings,
)
from .runner import InferenceRunner
from .session import ModelSessionManager, SessionState

log = structlog.get_logger(__name__)


class InferenceService:
    """Handles `Request` messages on one worker thread."""

    def __init__(
        self,
        manager: ModelSessionManager,
        runner: InferenceRunner | None = None,
    ):
        self.manager = manager
        self.runner = runner or InferenceRunner(manager)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference")

    def submit(self, request: Request) -> "Future[Response]":
        """Queue ``request``; raises RuntimeError once the service is closed."""
        return self._executor.submit(self.handle, request)

    def handle(self, request: Request) -> Response:
        try:
            if isinstance(request, RunInference):
                return InferenceResult(data=self._run_inference(request.data))
            if isinstance(request, UpdateSettings):
                return self._update_settings(request)
            log.warning("Unknown message type", message_type=type(request).__name__)
            return ErrorResponse(f"Unknown message type: {type(request).__name__}")
        except Exception as e:
            log.exception("Inference service error", message_type=type(request).__name__)
            return ErrorResponse(str(e) or type(e).__name__)

    def _run_inference(self, texts: list[str]) -> np.ndarray:
        try:
            return self._infer(texts)
        except SessionNotReady:
            log.info("Session not ready; loading before inference")
            self.manager.ensure_ready()
            return self._infer(texts)

    def _infer(self, texts: list[str]) -> np.ndarray:
        session = self.manager.require_session()
        log.debug("Running inference", inputs=len(texts))
        batch = encode_batch(texts, session.tokenizer, session.settings.max_seq_len)
        return self.runner.run(batch.input_ids, batch.attention_mask)

    def _update_settings(self, request: UpdateSettings) -> Response:
        self.manager.update_settings(request.data)
        if self.manager.state is not SessionState.READY:
            self.manager.load()
        return Ack()

    def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "InferenceService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ServiceChannel:
    """Requesting side of the service boundary."""

    def __init__(self, service: InferenceService, timeout: float | None = None):
        self.service = service
        self.timeout = timeout

    def call(self, request: Request) -> Response:
        """Send ``request`` and wait for its response."""
        try:
            future = self.service.submit(request)
        except RuntimeError as e:
            raise TransportError(f"Inference service unavailable: {e}") from e
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise TransportError("Inference service did not respond in time.") from e
        except CancelledError as e:
            raise TransportError("Inference request was cancelled.") from e
