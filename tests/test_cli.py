"""Tests for the command-line scanner."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from fakes import FakeAnalysisClient, FakeDispatcher, FakeSource
from idscan.cli import build_parser, main, run_scan
from idscan.errors import AnalysisError, CaptureCancelled, SyncError
from idscan.flow import FlowController, Phase


def _scripted(*answers):
    queue = list(answers)
    return lambda prompt: queue.pop(0)


def _run(controller, *answers, source=None, auto_approve=False):
    return asyncio.run(
        run_scan(
            controller,
            lambda: source or FakeSource(),
            auto_approve=auto_approve,
            ask=_scripted(*answers),
        )
    )


def test_successful_scan_is_synced(success_record, capsys) -> None:
    dispatcher = FakeDispatcher()
    controller = FlowController(FakeAnalysisClient(success_record), dispatcher)

    assert _run(controller, "") == 0
    assert controller.phase is Phase.SYNCED
    assert "12 MG Road" in capsys.readouterr().out


def test_auto_approve_skips_prompt(success_record) -> None:
    controller = FlowController(FakeAnalysisClient(success_record), FakeDispatcher())

    assert _run(controller, auto_approve=True) == 0


def test_retake_after_actionable_record(wrong_side_record, success_record, capsys) -> None:
    controller = FlowController(FakeAnalysisClient(wrong_side_record, success_record), FakeDispatcher())

    assert _run(controller, "y", "y") == 0
    assert "Flip to back side" in capsys.readouterr().out


def test_declining_retake_exits_with_failure(wrong_side_record) -> None:
    controller = FlowController(FakeAnalysisClient(wrong_side_record), FakeDispatcher())

    assert _run(controller, "n") == 1
    assert controller.phase is Phase.REVIEWING


def test_sync_failure_can_be_retried(success_record) -> None:
    dispatcher = FakeDispatcher(SyncError("down"), None)
    controller = FlowController(FakeAnalysisClient(success_record), dispatcher)

    assert _run(controller, "y", "y") == 0
    assert len(dispatcher.calls) == 2


def test_analysis_failure_prints_message(capsys) -> None:
    controller = FlowController(FakeAnalysisClient(AnalysisError("bad")), FakeDispatcher())

    assert _run(controller) == 1
    assert "try again" in capsys.readouterr().err


def test_cancelled_capture_exits_quietly(capsys) -> None:
    controller = FlowController(FakeAnalysisClient(), FakeDispatcher())

    assert _run(controller, source=FakeSource(error=CaptureCancelled())) == 1
    assert capsys.readouterr().err == ""


def test_parser_requires_a_source() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["scan"])


def test_parser_camera_defaults_to_first_device() -> None:
    args = build_parser().parse_args(["scan", "--camera"])

    assert args.camera == 0
    assert args.image is None


@patch("idscan.cli.GeminiAnalysisClient")
def test_main_scans_image_file(mock_client_cls, tmp_path, sample_image_bytes, success_record, monkeypatch) -> None:
    monkeypatch.delenv("IDSCAN_SYNC_URL", raising=False)
    monkeypatch.setenv("IDSCAN_SYNC_DELAY_S", "0")
    mock_client_cls.return_value = FakeAnalysisClient(success_record)
    path = tmp_path / "card.png"
    path.write_bytes(sample_image_bytes)

    exit_code = main(["--config", str(tmp_path / "absent.yaml"), "scan", "--image", str(path), "--yes"])

    assert exit_code == 0
    image = mock_client_cls.return_value.images[0]
    assert image[:2] == b"\xff\xd8"
