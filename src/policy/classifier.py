"""
Batch Classification
====================

Drives segmented paragraphs through the inference service in fixed-size
chunks and aggregates multi-label results per category.

Each chunk is one `RunInference` request sent through the `ServiceChannel`.
Transport failures are retried under a `RetryPolicy` (3 attempts, fixed
delay); an `ErrorResponse` from the service is an `ApplicationError` and is
raised immediately. A paragraph is attributed to every category whose
probability reaches the threshold; the catch-all "Other" category can be
suppressed.

After every chunk a `ClassificationProgress` snapshot is sent to the
reporter. If a chunk fails, the reporter is reset and the report built from
the chunks that did succeed stays available on ``BatchClassifier.report``.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, Protocol, Sequence

import numpy as np
import structlog

from common.errors import ApplicationError
from common.utils import RetryPolicy, call_with_retry
from inference.messages import ErrorResponse, InferenceResult, RunInference
from inference.service import ServiceChannel

log = structlog.get_logger(__name__)

CLASSES = (
    "First Party Collection/Use",
    "Third Party Sharing/Collection",
    "International and Specific Audiences",
    "User Access, Edit and Deletion",
    "User Choice/Control",
    "Data Retention",
    "Policy Change",
    "Data Security",
    "Do Not Track",
    "Other",
)
CATCH_ALL_CLASS = "Other"
CLASSIFICATION_THRESHOLD = 0.5

DEFAULT_RETRY_POLICY = RetryPolicy(max_attempts=3, delay=1.5)


@dataclass(frozen=True)
class AttributedParagraph:
    text: str
    probability: float


@dataclass
class ClassificationReport:
    """Paragraphs attributed to each category so far."""

    labels: tuple[str, ...]
    total: int
    processed: int = 0
    paragraphs: dict[str, list[AttributedParagraph]] = field(default_factory=dict)

    def __post_init__(self):
        for label in self.labels:
            self.paragraphs.setdefault(label, [])

    @property
    def counts(self) -> dict[str, int]:
        return {label: len(self.paragraphs[label]) for label in self.labels}

    @property
    def total_attributed(self) -> int:
        return sum(self.counts.values())

    @property
    def complete(self) -> bool:
        return self.processed == self.total

    def ranked(self, label: str) -> list[AttributedParagraph]:
        """Paragraphs of ``label`` by descending probability."""
        return sorted(self.paragraphs[label], key=lambda p: p.probability, reverse=True)

    def to_dict(self) -> dict:
        return {
            "total_paragraphs": self.total,
            "processed_paragraphs": self.processed,
            "complete": self.complete,
            "categories": [
                {
                    "label": label,
                    "count": len(self.paragraphs[label]),
                    "paragraphs": [
                        {"text": p.text, "probability": round(p.probability, 4)}
                        for p in self.ranked(label)
                    ],
                }
                for label in self.labels
                if self.paragraphs[label]
            ],
        }


@dataclass(frozen=True)
class ClassificationProgress:
    counts: dict[str, int]
    total_attributed: int
    processed: int
    total: int

    @property
    def fraction(self) -> float:
        return self.processed / self.total if self.total else 1.0


class ProgressReporter(Protocol):
    def update(self, progress: ClassificationProgress) -> None: ...

    def reset(self) -> None: ...


def chunk(paragraphs: Sequence[str], batch_size: int) -> Iterator[list[str]]:
    """Split ``paragraphs`` into contiguous chunks of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    for start in range(0, len(paragraphs), batch_size):
        yield list(paragraphs[start : start + batch_size])


def chunk_count(total: int, batch_size: int) -> int:
    return math.ceil(total / batch_size)


def attribute(probabilities: np.ndarray, threshold: float = CLASSIFICATION_THRESHOLD) -> np.ndarray:
    """Boolean ``[rows, classes]`` matrix: probability >= threshold, per class."""
    return np.asarray(probabilities) >= threshold


class BatchClassifier:
    """Classifies paragraphs chunk by chunk through a `ServiceChannel`."""

    def __init__(
        self,
        channel: ServiceChannel,
        batch_size: int,
        *,
        labels: Sequence[str] = CLASSES,
        skip_catch_all: bool = True,
        threshold: float = CLASSIFICATION_THRESHOLD,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.channel = channel
        self.batch_size = batch_size
        self.labels = tuple(labels)
        self.skip_catch_all = skip_catch_all
        self.threshold = threshold
        self.retry_policy = retry_policy
        self._sleep = sleep
        self.report: ClassificationReport | None = None

    def classify_text(self, inputs: list[str]) -> np.ndarray:
        """Classify one chunk, retrying transport failures only."""

        def attempt_inference() -> np.ndarray:
            response = self.channel.call(RunInference(data=inputs))
            if isinstance(response, InferenceResult):
                return np.asarray(response.data)
            if isinstance(response, ErrorResponse):
                raise ApplicationError(response.message)
            raise ApplicationError(
                f"Unexpected response type: {type(response).__name__}"
            )

        return call_with_retry(
            attempt_inference,
            self.retry_policy,
            operation="classify_text",
            sleep=self._sleep,
        )

    def classify(
        self,
        paragraphs: Sequence[str],
        reporter: ProgressReporter | None = None,
    ) -> ClassificationReport:
        """Classify every paragraph and return the aggregated report."""
        if not paragraphs:
            raise ValueError("No paragraphs to classify.")

        report = ClassificationReport(labels=self.labels, total=len(paragraphs))
        self.report = report
        log.info(
            "Starting classification",
            paragraphs=len(paragraphs),
            batch_size=self.batch_size,
            chunks=chunk_count(len(paragraphs), self.batch_size),
        )
        started = time.perf_counter()
        try:
            for batch in chunk(paragraphs, self.batch_size):
                batch_started = time.perf_counter()
                probabilities = self.classify_text(batch)
                self._aggregate(report, batch, probabilities)
                report.processed += len(batch)
                log.debug(
                    "Chunk classified",
                    processed=report.processed,
                    total=report.total,
                    elapsed_ms=round((time.perf_counter() - batch_started) * 1000, 1),
                )
                if reporter is not None:
                    reporter.update(
                        ClassificationProgress(
                            counts=report.counts,
                            total_attributed=report.total_attributed,
                            processed=report.processed,
                            total=report.total,
                        )
                    )
        except Exception:
            log.error(
                "Classification aborted",
                processed=report.processed,
                total=report.total,
            )
            if reporter is not None:
                reporter.reset()
            raise

        log.info(
            "Classification finished",
            paragraphs=report.total,
            attributed=report.total_attributed,
            elapsed_s=round(time.perf_counter() - started, 2),
        )
        return report

    def _aggregate(
        self,
        report: ClassificationReport,
        batch: list[str],
        probabilities: np.ndarray,
    ) -> None:
        if probabilities.shape != (len(batch), len(self.labels)):
            raise ApplicationError(
                f"Classification result has shape {probabilities.shape}; "
                f"expected ({len(batch)}, {len(self.labels)})."
            )
        matches = attribute(probabilities, self.threshold)
        for class_index, label in enumerate(self.labels):
            if self.skip_catch_all and label == CATCH_ALL_CLASS:
                continue
            for row in np.flatnonzero(matches[:, class_index]):
                report.paragraphs[label].append(
                    AttributedParagraph(
                        text=batch[row],
                        probability=float(probabilities[row, class_index]),
                    )
                )
