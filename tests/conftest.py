"""
Pytest configuration.

Why this exists:

The project uses a ``src/`` layout (package code lives in ``src/common``,
``src/artifacts``, ``src/inference`` and ``src/policy``). Normally,
developers run tests after installing the package (e.g. ``pip install -e .``).

On some macOS/Python 3.13 setups, editable installs in dot-prefixed virtualenv
folders (like ``.venv``) can result in the generated ``.pth`` file being marked
as hidden, and Python's ``site`` module will skip hidden ``.pth`` files. When
that happens, ``import policy`` fails even though the source tree is present.

This file makes tests robust in that scenario by adding ``src/`` to ``sys.path``
only when the packages cannot be imported normally.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from types import SimpleNamespace


def _ensure_src_on_path() -> None:
    try:
        import policy  # noqa: F401
        return
    except ModuleNotFoundError:
        pass

    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    sys.path.insert(0, str(src_dir))


_ensure_src_on_path()


# Imported after the path fix so the src/ packages resolve.
import numpy as np  # noqa: E402
import pytest  # noqa: E402
from tokenizers import Tokenizer  # noqa: E402
from tokenizers.models import WordLevel  # noqa: E402
from tokenizers.pre_tokenizers import Whitespace  # noqa: E402
from tokenizers.processors import TemplateProcessing  # noqa: E402

from artifacts.store import ArtifactBlob, ArtifactStore  # noqa: E402

VOCAB = {
    "[PAD]": 0,
    "[UNK]": 1,
    "[CLS]": 2,
    "[SEP]": 3,
    "we": 4,
    "collect": 5,
    "your": 6,
    "data": 7,
    "share": 8,
}
NUM_CLASSES = 10


@pytest.fixture
def tokenizer_json() -> str:
    """A tiny word-level ``tokenizer.json`` with BERT-style special tokens."""
    tokenizer = Tokenizer(WordLevel(VOCAB, unk_token="[UNK]"))
    tokenizer.pre_tokenizer = Whitespace()
    tokenizer.post_processor = TemplateProcessing(
        single="[CLS] $A [SEP]",
        special_tokens=[("[CLS]", VOCAB["[CLS]"]), ("[SEP]", VOCAB["[SEP]"])],
    )
    return tokenizer.to_str()


@pytest.fixture
def tokenizer_config() -> dict:
    return {
        "pad_token": "[PAD]",
        "unk_token": "[UNK]",
        "cls_token": "[CLS]",
        "sep_token": "[SEP]",
        "model_max_length": 512,
    }


@pytest.fixture
def model_store(tokenizer_json, tokenizer_config):
    """An in-memory store holding TinyBERT/base."""
    store = ArtifactStore(":memory:")
    store.put("TinyBERT/base/model", ArtifactBlob(b"onnx-weights"))
    store.put(
        "TinyBERT/base/tokenizer",
        ArtifactBlob(tokenizer_json.encode("utf-8"), "application/json"),
    )
    store.put(
        "TinyBERT/base/tokenizer_config",
        ArtifactBlob(json.dumps(tokenizer_config).encode("utf-8"), "application/json"),
    )
    return store


@pytest.fixture
def fake_ort(mocker):
    """Replace ONNX Runtime session creation with a fake model."""

    def run(output_names, feeds):
        rows = feeds["input_ids"].shape[0]
        return [np.full((rows, NUM_CLASSES), 0.25, dtype=np.float32)]

    inference_session = mocker.Mock()
    inference_session.get_outputs.return_value = [SimpleNamespace(name="output")]
    inference_session.run.side_effect = run

    session_cls = mocker.patch(
        "inference.session.ort.InferenceSession", return_value=inference_session
    )
    mocker.patch(
        "inference.session.ort.get_available_providers",
        return_value=["CPUExecutionProvider"],
    )
    return SimpleNamespace(session_cls=session_cls, session=inference_session)
