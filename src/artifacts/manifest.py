"""
Model Manifest & Downloader
===========================

The manifest (``models.json``) lists, for each model name and size, where to
download the weights and every tokenizer file::

    {
      "TinyBERT": {
        "base": {
          "model": "https://.../model.onnx",
          "tokenizer": {
            "tokenizer": "https://.../tokenizer.json",
            "tokenizer_config": "https://.../tokenizer_config.json"
          }
        }
      }
    }

`ModelDownloader` uses it to make sure a model's artifacts are in the
`ArtifactStore`, downloading them one at a time when they are not.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import requests
import structlog

from common.config import Settings
from common.errors import ArtifactMissing, TransportError
from common.model_settings import WEIGHTS_FILE_NAME, ModelSettings

from .fetcher import RemoteAssetFetcher
from .store import ArtifactStore

log = structlog.get_logger(__name__)

StatusCallback = Callable[[float, str], None]


@dataclass(frozen=True)
class ModelSources:
    """Download locations for one model name/size pair."""

    model: str
    tokenizer: dict[str, str]

    @property
    def tokenizer_files(self) -> list[str]:
        return list(self.tokenizer)


class ModelManifest:
    """Parsed ``models.json``."""

    def __init__(self, data: dict):
        if not isinstance(data, dict):
            raise ValueError("Model manifest must be a JSON object.")
        self._data = data

    @classmethod
    def load(cls, source: str, settings: Settings | None = None) -> "ModelManifest":
        """Load the manifest from a local path or an http(s) URL."""
        if source.startswith(("http://", "https://")):
            timeout = settings.REQUEST_TIMEOUT if settings else 30
            try:
                response = requests.get(source, timeout=timeout)
                response.raise_for_status()
                data = response.json()
            except requests.exceptions.RequestException as e:
                raise TransportError(f"Failed to fetch model manifest {source}: {e}") from e
        else:
            try:
                data = json.loads(Path(source).read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise ValueError(f"Cannot read model manifest {source}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Model manifest must be a JSON object.")
        log.debug("Loaded model manifest", source=source, models=sorted(data))
        return cls(data)

    def model_names(self) -> list[str]:
        return list(self._data)

    def model_sizes(self, model_name: str) -> list[str]:
        return list(self._data.get(model_name, {}))

    def sources(self, model_name: str, model_size: str) -> ModelSources:
        entry = self._data.get(model_name, {}).get(model_size)
        if not isinstance(entry, dict) or "model" not in entry:
            raise ArtifactMissing(f"{model_name}/{model_size}", "manifest entry")
        tokenizer = entry.get("tokenizer") or {}
        if not isinstance(tokenizer, dict):
            raise ValueError(
                f"Manifest tokenizer entry for {model_name}/{model_size} must be an object."
            )
        return ModelSources(model=entry["model"], tokenizer=dict(tokenizer))


class ModelDownloader:
    """Provisions a model's artifacts into the store from the manifest."""

    def __init__(
        self,
        manifest: ModelManifest,
        store: ArtifactStore,
        fetcher: RemoteAssetFetcher,
    ):
        self.manifest = manifest
        self.store = store
        self.fetcher = fetcher

    def required_keys(self, settings: ModelSettings) -> list[str]:
        sources = self.manifest.sources(settings.model_name, settings.model_size)
        keys = [settings.artifact_key(name) for name in sources.tokenizer_files]
        keys.append(settings.weights_key)
        return keys

    def is_downloaded(self, settings: ModelSettings) -> bool:
        """True when the weights and every tokenizer file are in the store."""
        log.debug("Checking model files", model=settings.identity)
        return self.store.exists_all(self.required_keys(settings))

    def ensure(
        self,
        settings: ModelSettings,
        on_status: StatusCallback | None = None,
    ) -> bool:
        """
        Download the model unless it is already present.

        Returns True if a download happened.
        """
        if self.is_downloaded(settings):
            return False
        self.download(settings, on_status)
        return True

    def download(
        self,
        settings: ModelSettings,
        on_status: StatusCallback | None = None,
    ) -> None:
        """Download the weights, then each tokenizer file, sequentially."""
        sources = self.manifest.sources(settings.model_name, settings.model_size)
        status = on_status or (lambda fraction, message: None)
        log.info("Downloading model", model=settings.identity)

        status(0.0, "Downloading model weights...")
        self.fetcher.fetch_into(
            self.store,
            settings.artifact_key(WEIGHTS_FILE_NAME),
            sources.model,
            lambda pct: status(pct, "Downloading model weights..."),
        )

        total = len(sources.tokenizer)
        for completed, (file_name, url) in enumerate(sources.tokenizer.items(), 1):
            message = f"Downloading tokenizer: {file_name} ..."
            status(0.0, message)
            self.fetcher.fetch_into(
                self.store,
                settings.artifact_key(file_name),
                url,
                lambda pct, message=message: status(pct, message),
            )
            status(completed / total, f"Downloaded tokenizer file: {file_name}")

        status(1.0, "Download completed.")
        log.info("Model download complete", model=settings.identity)
