"""
Tensor Codec
============

Turns a batch of paragraphs into the numpy arrays the ONNX model expects.

The tokenizer produces integer token ids and an integer attention mask. The
model takes ``input_ids`` as int64 but ``attention_mask`` as float32, so the
mask is cast. Mask values are only ever 0 or 1, which float32 represents
exactly; `cast_attention_mask` refuses anything else rather than round.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np


@dataclass(frozen=True)
class EncodedBatch:
    input_ids: np.ndarray
    attention_mask: np.ndarray

    @property
    def shape(self) -> tuple[int, int]:
        return self.input_ids.shape


def cast_attention_mask(mask: Any) -> np.ndarray:
    """Reinterpret a 0/1 integer mask as float32."""
    mask = np.asarray(mask)
    if mask.size and not np.isin(mask, (0, 1)).all():
        raise ValueError("Attention mask may only contain 0 and 1.")
    return mask.astype(np.float32)


def encode_batch(texts: Sequence[str], tokenizer: Any, max_seq_len: int) -> EncodedBatch:
    """
    Tokenize ``texts`` into padded, truncated id and mask tensors.

    ``tokenizer`` is any callable with the Hugging Face tokenizer call
    signature (``padding``, ``truncation``, ``max_length``,
    ``add_special_tokens``, ``return_tensors``).
    """
    if not texts:
        raise ValueError("Cannot encode an empty batch.")
    if max_seq_len < 1:
        raise ValueError("max_seq_len must be >= 1")

    encoded = tokenizer(
        list(texts),
        padding=True,
        truncation=True,
        max_length=max_seq_len,
        add_special_tokens=True,
        return_tensors="np",
    )
    input_ids = np.asarray(encoded["input_ids"], dtype=np.int64)
    attention_mask = cast_attention_mask(encoded["attention_mask"])

    if input_ids.ndim != 2 or input_ids.shape != attention_mask.shape:
        raise ValueError(
            f"Token ids {input_ids.shape} and attention mask {attention_mask.shape} "
            "must share the same 2-D shape."
        )
    if input_ids.shape[0] != len(texts):
        raise ValueError(
            f"Tokenizer returned {input_ids.shape[0]} rows for {len(texts)} texts."
        )
    return EncodedBatch(input_ids=input_ids, attention_mask=attention_mask)
