"""ID card address scanner: capture, analyze, review and sync."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .classifier import classify
from .flow import FlowController, Phase

__version__ = "0.1.0"

if TYPE_CHECKING:  # pragma: no cover
    from .main import app, create_app


def __getattr__(name: str):
    # FastAPI is only imported when the web app is requested.
    if name in {"app", "create_app"}:
        from . import main

        return getattr(main, name)
    raise AttributeError(f"module 'idscan' has no attribute {name!r}")


__all__ = ["FlowController", "Phase", "app", "classify", "create_app"]
