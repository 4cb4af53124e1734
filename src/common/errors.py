"""
Error taxonomy shared by the artifact, inference and policy packages.

Every error raised on purpose by this project derives from
``PolicyClassifierError`` so the CLI can report it with a single handler.
Which errors are retried is decided by the caller's ``RetryPolicy``; only
``TransportError`` is retryable by default.
"""

from __future__ import annotations


class PolicyClassifierError(Exception):
    """Base class for all expected failures."""


class StorageError(PolicyClassifierError):
    """The artifact store could not be read or written."""


class ArtifactMissing(PolicyClassifierError):
    """A required artifact is absent from the store (or the manifest)."""

    def __init__(self, identity: str, artifact: str | None = None):
        self.identity = identity
        self.artifact = artifact
        if artifact is None:
            message = f"Model '{identity}' not found in the artifact store."
        else:
            message = f"Artifact '{artifact}' of model '{identity}' not found."
        super().__init__(message)


class UnsupportedArtifactKind(PolicyClassifierError):
    """An artifact's media type matches none of the supported content kinds."""

    def __init__(self, artifact: str, media_type: str):
        self.artifact = artifact
        self.media_type = media_type
        super().__init__(
            f"Unsupported file type for tokenizer artifact '{artifact}': {media_type}"
        )


class TransportError(PolicyClassifierError):
    """A transfer or cross-boundary call failed to deliver or respond."""


class ApplicationError(PolicyClassifierError):
    """The remote side explicitly reported a failure."""


class SessionNotReady(PolicyClassifierError):
    """Inference was requested without a Ready session."""


class RetryExhausted(PolicyClassifierError):
    """A retried operation failed on every attempt."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}"
        )
