"""
Privacy Policy Classifier
=========================

Command-line entry point.

``classify URL``
    Fetch the policy at URL, segment it into paragraphs and classify them
    with the locally cached model, printing each category with its
    paragraphs (highest probability first).

``download``
    Make sure the model named in the current settings is in the artifact
    store, downloading it from the model manifest if needed.

``settings show | set KEY=VALUE... | reset``
    Inspect or change the persisted model settings. ``set`` downloads the
    newly selected model if it is missing and checks that it loads.

Process-level configuration (log format, storage paths, timeouts, retries)
comes from environment variables, see :mod:`common.config`.
"""

from __future__ import annotations

import argparse
import json
import sys
from urllib.parse import urlparse

import structlog

from artifacts.fetcher import RemoteAssetFetcher
from artifacts.manifest import ModelDownloader, ModelManifest
from artifacts.store import ArtifactStore
from common.config import Settings
from common.errors import PolicyClassifierError
from common.logging_config import configure_logging
from common.model_settings import ModelSettings, SettingsStore, parse_setting_value
from common.utils import RetryPolicy
from inference.messages import Ack, ErrorResponse, UpdateSettings
from inference.service import InferenceService, ServiceChannel
from inference.session import ModelSessionManager

from .classifier import BatchClassifier, ClassificationProgress, ClassificationReport
from .document import PolicyDocumentClient
from .segmenter import segment

NO_TEXT_MESSAGE = "No text found in the privacy policy."


class LogProgressReporter:
    """Reports classification progress through the structured log."""

    def __init__(self):
        self._log = structlog.get_logger(__name__)

    def update(self, progress: ClassificationProgress) -> None:
        self._log.info(
            "Classification progress",
            progress=f"{progress.fraction:.0%}",
            processed=progress.processed,
            total=progress.total,
            attributed=progress.total_attributed,
        )

    def reset(self) -> None:
        self._log.info("Classification progress reset")


def _status_logger(log):
    def on_status(fraction: float, message: str) -> None:
        log.info(message, progress=f"{fraction:.0%}")

    return on_status


def _load_downloader(
    settings: Settings,
    store: ArtifactStore,
    fetcher: RemoteAssetFetcher,
    *,
    required: bool,
) -> ModelDownloader | None:
    log = structlog.get_logger(__name__)
    try:
        manifest = ModelManifest.load(settings.MODEL_MANIFEST, settings)
    except (ValueError, PolicyClassifierError) as e:
        if required:
            raise
        log.warning(
            "Model manifest unavailable; models must already be downloaded",
            manifest=settings.MODEL_MANIFEST,
            error=str(e),
        )
        return None
    return ModelDownloader(manifest, store, fetcher)


def _display_domain(url: str) -> str:
    hostname = urlparse(url).hostname or url
    return hostname[4:] if hostname.startswith("www.") else hostname


def format_report(report: ClassificationReport, url: str) -> str:
    lines = [
        f"Policy: {_display_domain(url)} ({url})",
        f"Paragraphs: {report.processed}/{report.total}"
        + ("" if report.complete else " (incomplete)"),
        f"Attributed: {report.total_attributed}",
    ]
    for label in report.labels:
        paragraphs = report.ranked(label)
        if not paragraphs:
            continue
        lines.append("")
        lines.append(f"{label}: {len(paragraphs)}")
        for paragraph in paragraphs:
            lines.append(f"  [{paragraph.probability:.2f}] {paragraph.text}")
    return "\n".join(lines)


def run_classify(args: argparse.Namespace, settings: Settings) -> int:
    log = structlog.get_logger(__name__)
    model_settings = SettingsStore(settings.SETTINGS_PATH).get()
    log.info("Classifying policy", url=args.url, **model_settings.to_dict())

    fetcher = RemoteAssetFetcher(settings)
    document_client = PolicyDocumentClient(settings)
    store = classifier = None
    try:
        store = ArtifactStore(settings.ARTIFACT_STORE_PATH)
        downloader = _load_downloader(settings, store, fetcher, required=False)
        manager = ModelSessionManager(store, model_settings, downloader)
        with InferenceService(manager) as service:
            paragraphs = segment(document_client.fetch(args.url))
            log.info("Segments found", count=len(paragraphs))
            if not paragraphs:
                print(NO_TEXT_MESSAGE)
                return 0

            classifier = BatchClassifier(
                ServiceChannel(service),
                model_settings.batch_size,
                skip_catch_all=settings.SKIP_OTHER_CLASS,
                retry_policy=RetryPolicy(
                    max_attempts=settings.MAX_RETRIES,
                    delay=settings.RETRY_DELAY_SECONDS,
                ),
            )
            report = classifier.classify(paragraphs, LogProgressReporter())
    except (PolicyClassifierError, ValueError) as e:
        log.error("Classification failed", url=args.url, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        partial = classifier.report if classifier is not None else None
        if partial is not None and partial.processed:
            _print_report(partial, args)
        return 1
    finally:
        document_client.close()
        fetcher.close()
        if store is not None:
            store.close()

    _print_report(report, args)
    return 0


def _print_report(report: ClassificationReport, args: argparse.Namespace) -> None:
    if args.json:
        print(json.dumps({"url": args.url, **report.to_dict()}, indent=2))
    else:
        print(format_report(report, args.url))


def run_download(args: argparse.Namespace, settings: Settings) -> int:
    log = structlog.get_logger(__name__)
    model_settings = SettingsStore(settings.SETTINGS_PATH).get()
    fetcher = RemoteAssetFetcher(settings)
    store = None
    try:
        store = ArtifactStore(settings.ARTIFACT_STORE_PATH)
        downloader = _load_downloader(settings, store, fetcher, required=True)
        downloaded = downloader.ensure(model_settings, _status_logger(log))
    except (PolicyClassifierError, ValueError) as e:
        log.error("Model download failed", model=model_settings.identity, error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        fetcher.close()
        if store is not None:
            store.close()

    if downloaded:
        print(f"Downloaded model '{model_settings.identity}'.")
    else:
        print(f"Model '{model_settings.identity}' is already downloaded.")
    return 0


def _apply_model_settings(model_settings: ModelSettings, settings: Settings) -> int:
    """Download the selected model if missing and check that it loads."""
    log = structlog.get_logger(__name__)
    fetcher = RemoteAssetFetcher(settings)
    store = None
    try:
        store = ArtifactStore(settings.ARTIFACT_STORE_PATH)
        downloader = _load_downloader(settings, store, fetcher, required=False)
        if downloader is not None:
            exists = downloader.is_downloaded(model_settings)
            log.info("Model existence check", model=model_settings.identity, exists=exists)
            if not exists:
                downloader.download(model_settings, _status_logger(log))
        manager = ModelSessionManager(store, model_settings, downloader)
        with InferenceService(manager) as service:
            response = ServiceChannel(service).call(UpdateSettings(data=model_settings))
    except (PolicyClassifierError, ValueError) as e:
        response = ErrorResponse(str(e))
    finally:
        fetcher.close()
        if store is not None:
            store.close()

    if isinstance(response, Ack):
        print(response.message)
        return 0
    message = response.message if isinstance(response, ErrorResponse) else repr(response)
    print(
        f"Failed to load the model '{model_settings.model_name}'. Error: {message}",
        file=sys.stderr,
    )
    return 1


def run_settings(args: argparse.Namespace, settings: Settings) -> int:
    log = structlog.get_logger(__name__)
    store = SettingsStore(settings.SETTINGS_PATH)
    if args.action == "show":
        print(json.dumps(store.get().to_dict(), indent=2))
        return 0
    if args.action == "reset":
        try:
            defaults = store.reset()
        except OSError as e:
            log.error("Settings reset failed", path=str(store.path), error=str(e))
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(json.dumps(defaults.to_dict(), indent=2))
        return 0

    try:
        changes = {}
        for assignment in args.assignments:
            name, sep, raw = assignment.partition("=")
            if not sep:
                raise ValueError(f"Expected KEY=VALUE, got {assignment!r}")
            name = name.strip()
            changes[name] = parse_setting_value(name, raw.strip())
        updated = store.set(changes)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        log.error("Settings save failed", path=str(store.path), error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(json.dumps(updated.to_dict(), indent=2))
    return _apply_model_settings(updated, settings)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="policy-classifier",
        description="Classify the paragraphs of a privacy policy.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    classify = commands.add_parser("classify", help="Classify the policy at a URL.")
    classify.add_argument("url", help="URL of the privacy policy page.")
    classify.add_argument("--json", action="store_true", help="Print the report as JSON.")
    classify.set_defaults(handler=run_classify)

    download = commands.add_parser("download", help="Download the configured model.")
    download.set_defaults(handler=run_download)

    settings = commands.add_parser("settings", help="Show or change model settings.")
    settings_actions = settings.add_subparsers(dest="action", required=True)
    settings_actions.add_parser("show", help="Print the current settings.")
    settings_actions.add_parser("reset", help="Restore the default settings.")
    set_action = settings_actions.add_parser("set", help="Change settings (KEY=VALUE).")
    set_action.add_argument("assignments", nargs="+", metavar="KEY=VALUE")
    settings.set_defaults(handler=run_settings)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, configure logging and run the selected command."""
    log = structlog.get_logger(__name__)
    args = build_parser().parse_args(argv)

    try:
        settings = Settings()
        configure_logging(settings)
    except ValueError as e:
        log.error("Configuration error", error=str(e))
        return 2

    return args.handler(args, settings)


if __name__ == "__main__":
    sys.exit(main())
