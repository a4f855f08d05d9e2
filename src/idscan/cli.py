"""Command-line scanner that drives the same flow as the HTTP API."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Callable, Optional, Sequence

from .analysis import GeminiAnalysisClient
from .capture import CameraImageSource, FileImageSource, ImageSource
from .flow import FlowController, Phase
from .sync import build_dispatcher
from .settings import configure_logging, load_settings

logger = logging.getLogger(__name__)

Ask = Callable[[str], str]


def _yes(answer: str, default: bool) -> bool:
    answer = answer.strip().lower()
    if not answer:
        return default
    return answer in {"y", "yes"}


def _print_review(controller: FlowController) -> None:
    record = controller.session.record
    outcome = controller.session.outcome
    if record is None or outcome is None:
        return
    print(f"Document: {record.id_type or 'Unknown ID'}")
    print(f"Address:  {record.extracted_address or 'Address not found.'}")
    print(f"Confidence: {record.confidence_score:.2f}")
    if not outcome.success:
        print(f"Attention needed: {outcome.guidance}")


async def _send(controller: FlowController, ask: Ask) -> int:
    while True:
        await controller.approve()
        if controller.phase is Phase.SYNCED:
            print("Address synced with the application.")
            return 0
        print(controller.session.error_message, file=sys.stderr)
        if not _yes(ask("Try sending again? [y/N] "), default=False):
            return 1


async def run_scan(
    controller: FlowController,
    make_source: Callable[[], ImageSource],
    *,
    auto_approve: bool = False,
    ask: Ask = input,
) -> int:
    """Run scans until the address is synced or the user gives up.

    Returns ``0`` once the address has been synced, ``1`` otherwise.
    """

    controller.start_scan()
    while True:
        await controller.capture(make_source())

        if controller.phase is Phase.IDLE:
            if controller.session.error_message:
                print(controller.session.error_message, file=sys.stderr)
            return 1

        _print_review(controller)
        if controller.session.outcome.success:
            if auto_approve or _yes(ask("Send to application? [Y/n] "), default=True):
                return await _send(controller, ask)

        if not _yes(ask("Retake photo? [y/N] "), default=False):
            return 1
        controller.retake()


def _camera_confirm() -> bool:
    answer = input("Align the ID card and press Enter to capture (q to cancel): ")
    return answer.strip().lower() != "q"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="idscan", description="Scan an Indian ID card and extract its address.")
    parser.add_argument("--config", type=str, default=None, help="Path to a YAML config file.")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Capture an ID card and send its address.")
    source = scan.add_mutually_exclusive_group(required=True)
    source.add_argument("--image", type=str, help="Path to an image of the ID card.")
    source.add_argument("--camera", type=int, nargs="?", const=0, help="Camera index to capture from.")
    scan.add_argument("--camera-open-timeout", type=float, default=5.0)
    scan.add_argument("--yes", action="store_true", help="Send a successful result without asking.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args.config)
    configure_logging(settings.log_level)

    client = GeminiAnalysisClient(settings.api_key, model=settings.model, temperature=settings.temperature)
    controller = FlowController(client, build_dispatcher(settings))

    if args.image:
        def make_source() -> ImageSource:
            return FileImageSource(args.image)
    else:
        def make_source() -> ImageSource:
            return CameraImageSource(
                args.camera,
                confirm=_camera_confirm,
                open_timeout_s=args.camera_open_timeout,
            )

    try:
        return asyncio.run(run_scan(controller, make_source, auto_approve=args.yes))
    except KeyboardInterrupt:
        logger.info("Interrupted in phase %s", controller.phase.value)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
