"""
Artifact package.

This package contains:

- the SQLite-backed artifact store for model weights and tokenizer files
- the streaming HTTP fetcher that fills it
- the model manifest and the downloader that provisions a model
"""

from .fetcher import RemoteAssetFetcher
from .manifest import ModelDownloader, ModelManifest, ModelSources
from .store import ArtifactBlob, ArtifactStore, ContentKind

__all__ = [
    "ArtifactBlob",
    "ArtifactStore",
    "ContentKind",
    "ModelDownloader",
    "ModelManifest",
    "ModelSources",
    "RemoteAssetFetcher",
]
