"""
Model Session Manager
=====================

Owns the ONNX Runtime inference session and its tokenizer for the active
`ModelSettings`.

The manager is an explicit state machine::

    UNLOADED -> LOADING -> READY | FAILED
    READY    -> RELOADING -> READY | FAILED

Loading reads every artifact of the model's namespace from the
`ArtifactStore`. If the weights or the tokenizer files are missing and a
`ModelDownloader` is configured, the model is downloaded first. Artifacts
are decoded by content kind (JSON config, plain text, raw bytes); any other
media type fails the load.

All state transitions happen under one lock. `ensure_ready` publishes the
load it starts as a `Future`; concurrent callers wait on that future and
observe its outcome (session or error) instead of starting a second load.
"""

from __future__ import annotations

import json
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import onnxruntime as ort
import structlog
from tokenizers import Tokenizer
from transformers import PreTrainedTokenizerFast

from artifacts.manifest import ModelDownloader
from artifacts.store import ArtifactBlob, ArtifactStore, ContentKind
from common.errors import ArtifactMissing, SessionNotReady, UnsupportedArtifactKind
from common.model_settings import WEIGHTS_FILE_NAME, ModelSettings

log = structlog.get_logger(__name__)

TOKENIZER_FILE = "tokenizer"
TOKENIZER_CONFIG_FILE = "tokenizer_config"
REQUIRED_TOKENIZER_FILES = (TOKENIZER_FILE, TOKENIZER_CONFIG_FILE)

ACCELERATED_PROVIDERS = (
    "CUDAExecutionProvider",
    "ROCMExecutionProvider",
    "DmlExecutionProvider",
    "CoreMLExecutionProvider",
)
CPU_PROVIDER = "CPUExecutionProvider"

SPECIAL_TOKEN_KEYS = (
    "bos_token",
    "eos_token",
    "unk_token",
    "sep_token",
    "pad_token",
    "cls_token",
    "mask_token",
)
TOKENIZER_INIT_KEYS = (
    "model_max_length",
    "padding_side",
    "truncation_side",
    "clean_up_tokenization_spaces",
    "model_input_names",
)


class SessionState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    RELOADING = "reloading"
    FAILED = "failed"


@dataclass(frozen=True)
class Session:
    """A loaded model: inference session plus tokenizer."""

    settings: ModelSettings
    tokenizer: Any
    inference_session: Any
    providers: list[str] = field(default_factory=list)


def decode_artifact(name: str, blob: ArtifactBlob) -> Any:
    """Decode a tokenizer/config artifact according to its content kind."""
    kind = blob.kind
    if kind is ContentKind.STRUCTURED_CONFIG:
        return json.loads(blob.data.decode("utf-8"))
    if kind is ContentKind.PLAIN_TEXT:
        return blob.data.decode("utf-8")
    if kind is ContentKind.OPAQUE_BINARY:
        return blob.data
    raise UnsupportedArtifactKind(name, blob.media_type)


def build_tokenizer(tokenizer_data: Any, tokenizer_config: Any) -> PreTrainedTokenizerFast:
    """
    Build a fast tokenizer from a ``tokenizer.json`` document and its
    ``tokenizer_config.json``.

    Either may arrive parsed (dict), as text or as raw bytes, depending on the
    media type the server declared when it was downloaded.
    """
    if isinstance(tokenizer_data, (bytes, bytearray)):
        tokenizer_data = tokenizer_data.decode("utf-8")
    raw = tokenizer_data if isinstance(tokenizer_data, str) else json.dumps(tokenizer_data)
    backend = Tokenizer.from_str(raw)

    if isinstance(tokenizer_config, (bytes, bytearray)):
        tokenizer_config = tokenizer_config.decode("utf-8")
    if isinstance(tokenizer_config, str):
        tokenizer_config = json.loads(tokenizer_config)
    config = tokenizer_config or {}

    kwargs: dict[str, Any] = {}
    for key in SPECIAL_TOKEN_KEYS:
        value = config.get(key)
        if isinstance(value, dict):
            value = value.get("content")
        if value:
            kwargs[key] = value
    for key in TOKENIZER_INIT_KEYS:
        if key in config:
            kwargs[key] = config[key]
    if "pad_token" not in kwargs and backend.padding:
        kwargs["pad_token"] = backend.padding.get("pad_token")

    return PreTrainedTokenizerFast(tokenizer_object=backend, **kwargs)


def select_execution_providers(use_hw_acceleration: bool) -> list[str]:
    """Accelerated providers available on this machine (if wanted), then CPU."""
    providers: list[str] = []
    if use_hw_acceleration:
        available = set(ort.get_available_providers())
        providers.extend(p for p in ACCELERATED_PROVIDERS if p in available)
    providers.append(CPU_PROVIDER)
    return providers


def create_inference_session(weights: bytes, settings: ModelSettings) -> tuple[Any, list[str]]:
    """Create an ONNX Runtime session, falling back to CPU if acceleration fails."""
    options = ort.SessionOptions()
    options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
    options.intra_op_num_threads = settings.num_threads
    options.log_severity_level = 3

    providers = select_execution_providers(settings.use_hw_acceleration)
    log.info("Using execution providers", providers=providers, model=settings.identity)
    try:
        return (
            ort.InferenceSession(weights, sess_options=options, providers=providers),
            providers,
        )
    except Exception as e:
        if providers == [CPU_PROVIDER]:
            raise
        log.warning(
            "Accelerated session creation failed; falling back to CPU",
            model=settings.identity,
            error=str(e),
        )
        return (
            ort.InferenceSession(weights, sess_options=options, providers=[CPU_PROVIDER]),
            [CPU_PROVIDER],
        )


class ModelSessionManager:
    """Lazily loads, reloads and hands out the `Session` for the active settings."""

    def __init__(
        self,
        store: ArtifactStore,
        settings: ModelSettings,
        downloader: ModelDownloader | None = None,
    ):
        self.store = store
        self.downloader = downloader
        self._settings = settings
        self._state = SessionState.UNLOADED
        self._session: Session | None = None
        self._lock = threading.RLock()
        self._pending_lock = threading.Lock()
        self._pending_load: "Future[Session] | None" = None
        self.last_error: BaseException | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def settings(self) -> ModelSettings:
        return self._settings

    def require_session(self) -> Session:
        """Return the Ready session or raise `SessionNotReady`."""
        session = self._session
        if self._state is not SessionState.READY or session is None:
            raise SessionNotReady(
                f"Model session for '{self._settings.identity}' is {self._state.value}."
            )
        return session

    def load(self) -> Session:
        """(Re)build the session for the current settings from scratch."""
        with self._lock:
            self._state = SessionState.LOADING
            return self._build_and_swap(self._settings)

    def ensure_ready(self) -> Session:
        """
        Return the Ready session, loading it if needed.

        A caller that waited on another thread's load observes that load's
        outcome (including its failure) rather than starting a second one.
        """
        with self._pending_lock:
            session = self._session
            if self._state is SessionState.READY and session is not None:
                return session
            pending = self._pending_load
            started_here = pending is None
            if started_here:
                pending = self._pending_load = Future()

        if not started_here:
            log.debug("Waiting for load in progress", model=self._settings.identity)
            return pending.result()

        try:
            session = self.load()
        except BaseException as e:
            pending.set_exception(e)
            raise
        else:
            pending.set_result(session)
            return session
        finally:
            with self._pending_lock:
                self._pending_load = None

    def update_settings(self, settings: ModelSettings) -> bool:
        """
        Replace the settings snapshot, reloading the session when a
        session-affecting field changed. Returns True if a reload happened.
        """
        with self._lock:
            previous = self._settings
            self._settings = settings
            log.info(
                "Model settings updated",
                previous=previous.identity,
                current=settings.identity,
                state=self._state.value,
            )
            if self._session is None:
                return False
            if previous.session_key() == settings.session_key():
                self._session = Session(
                    settings=settings,
                    tokenizer=self._session.tokenizer,
                    inference_session=self._session.inference_session,
                    providers=self._session.providers,
                )
                return False
            self._state = SessionState.RELOADING
            self._build_and_swap(settings)
            return True

    def unload(self) -> None:
        with self._lock:
            self._session = None
            self._state = SessionState.UNLOADED
            log.info("Model session unloaded", model=self._settings.identity)

    def _build_and_swap(self, settings: ModelSettings) -> Session:
        """Build a new session; only replace the old one once it is complete."""
        try:
            session = self._build(settings)
        except Exception as e:
            self._session = None
            self._state = SessionState.FAILED
            self.last_error = e
            log.error("Model session load failed", model=settings.identity, error=str(e))
            raise
        self._session = session
        self._state = SessionState.READY
        self.last_error = None
        log.info("Model session ready", model=settings.identity, providers=session.providers)
        return session

    def _build(self, settings: ModelSettings) -> Session:
        log.info("Loading model and tokenizer", **settings.to_dict())
        self._provision_if_missing(settings)

        weights = self.store.get(settings.weights_key)
        if weights is None:
            raise ArtifactMissing(settings.identity)

        decoded: dict[str, Any] = {}
        for name, blob in self.store.scan_prefix(settings.namespace).items():
            if name == WEIGHTS_FILE_NAME:
                continue
            decoded[name] = decode_artifact(name, blob)
        for name in REQUIRED_TOKENIZER_FILES:
            if name not in decoded:
                raise ArtifactMissing(settings.identity, name)

        tokenizer = build_tokenizer(decoded[TOKENIZER_FILE], decoded[TOKENIZER_CONFIG_FILE])
        log.debug("Tokenizer loaded", model=settings.identity)
        inference_session, providers = create_inference_session(weights.data, settings)
        return Session(
            settings=settings,
            tokenizer=tokenizer,
            inference_session=inference_session,
            providers=providers,
        )

    def _provision_if_missing(self, settings: ModelSettings) -> None:
        if self.downloader is None:
            return
        keys = [settings.weights_key] + [
            settings.artifact_key(name) for name in REQUIRED_TOKENIZER_FILES
        ]
        if self.store.exists_all(keys):
            return
        log.info("Model artifacts missing; downloading", model=settings.identity)
        self.downloader.ensure(settings)
