"""
Policy domain package.

This package contains:

- the policy document client and the paragraph segmenter
- the batch classifier that drives paragraphs through the inference service
- the command-line entry point
"""

from .classifier import (
    CLASSES,
    BatchClassifier,
    ClassificationProgress,
    ClassificationReport,
)
from .document import PolicyDocumentClient
from .segmenter import parse_document, segment

__all__ = [
    "BatchClassifier",
    "CLASSES",
    "ClassificationProgress",
    "ClassificationReport",
    "PolicyDocumentClient",
    "parse_document",
    "segment",
]
