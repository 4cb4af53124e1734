import json
import os

import pytest

from artifacts.fetcher import RemoteAssetFetcher
from artifacts.manifest import ModelDownloader, ModelManifest
from artifacts.store import ArtifactBlob, ArtifactStore
from common.config import Settings
from common.errors import ArtifactMissing, TransportError
from common.model_settings import ModelSettings

BASE = "https://models.example.com/TinyBERT/base"
MANIFEST = {
    "TinyBERT": {
        "base": {
            "model": f"{BASE}/model.onnx",
            "tokenizer": {
                "tokenizer": f"{BASE}/tokenizer.json",
                "tokenizer_config": f"{BASE}/tokenizer_config.json",
            },
        }
    }
}


@pytest.fixture
def settings(mocker):
    mocker.patch.dict(os.environ, {}, clear=True)
    return Settings()


@pytest.fixture
def store():
    return ArtifactStore(":memory:")


@pytest.fixture
def downloader(settings, store):
    return ModelDownloader(ModelManifest(MANIFEST), store, RemoteAssetFetcher(settings))


def _mock_model_files(requests_mock):
    requests_mock.get(f"{BASE}/model.onnx", content=b"onnx", headers={"Content-Length": "4"})
    requests_mock.get(
        f"{BASE}/tokenizer.json",
        content=b"{}",
        headers={"Content-Type": "application/json"},
    )
    requests_mock.get(
        f"{BASE}/tokenizer_config.json",
        content=b"{}",
        headers={"Content-Type": "application/json"},
    )


def test_load_manifest_from_file(tmp_path):
    path = tmp_path / "models.json"
    path.write_text(json.dumps(MANIFEST))

    manifest = ModelManifest.load(str(path))

    assert manifest.model_names() == ["TinyBERT"]
    assert manifest.model_sizes("TinyBERT") == ["base"]
    assert manifest.sources("TinyBERT", "base").tokenizer_files == [
        "tokenizer",
        "tokenizer_config",
    ]


def test_load_manifest_from_url(settings, requests_mock):
    requests_mock.get("https://models.example.com/models.json", json=MANIFEST)

    manifest = ModelManifest.load("https://models.example.com/models.json", settings)

    assert manifest.sources("TinyBERT", "base").model == f"{BASE}/model.onnx"


def test_load_manifest_errors(tmp_path, settings, requests_mock):
    with pytest.raises(ValueError, match="Cannot read model manifest"):
        ModelManifest.load(str(tmp_path / "missing.json"))

    (tmp_path / "list.json").write_text("[]")
    with pytest.raises(ValueError, match="must be a JSON object"):
        ModelManifest.load(str(tmp_path / "list.json"))

    requests_mock.get("https://models.example.com/models.json", status_code=503)
    with pytest.raises(TransportError):
        ModelManifest.load("https://models.example.com/models.json", settings)


def test_sources_for_unknown_model_raise():
    with pytest.raises(ArtifactMissing, match="TinyBERT/huge"):
        ModelManifest(MANIFEST).sources("TinyBERT", "huge")


def test_download_fetches_weights_then_tokenizer_files(downloader, store, requests_mock):
    _mock_model_files(requests_mock)
    messages = []

    downloaded = downloader.ensure(ModelSettings(), lambda pct, msg: messages.append(msg))

    assert downloaded is True
    assert [r.url for r in requests_mock.request_history] == [
        f"{BASE}/model.onnx",
        f"{BASE}/tokenizer.json",
        f"{BASE}/tokenizer_config.json",
    ]
    assert store.get("TinyBERT/base/model").data == b"onnx"
    assert store.get("TinyBERT/base/tokenizer").media_type == "application/json"
    assert messages[0] == "Downloading model weights..."
    assert "Downloaded tokenizer file: tokenizer_config" in messages
    assert messages[-1] == "Download completed."


def test_ensure_skips_download_when_present(downloader, store, requests_mock):
    for name in ("model", "tokenizer", "tokenizer_config"):
        store.put(f"TinyBERT/base/{name}", ArtifactBlob(b"{}"))

    assert downloader.is_downloaded(ModelSettings())
    assert downloader.ensure(ModelSettings()) is False
    assert requests_mock.call_count == 0


def test_failed_download_leaves_later_files_absent(downloader, store, requests_mock):
    requests_mock.get(f"{BASE}/model.onnx", content=b"onnx")
    requests_mock.get(f"{BASE}/tokenizer.json", status_code=500)

    with pytest.raises(TransportError):
        downloader.download(ModelSettings())

    assert store.exists("TinyBERT/base/model")
    assert not store.exists("TinyBERT/base/tokenizer")
    assert not store.exists("TinyBERT/base/tokenizer_config")
    assert not downloader.is_downloaded(ModelSettings())
