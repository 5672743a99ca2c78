"""Serverless entrypoint exposing the ASGI app from a source checkout."""

import sys
from pathlib import Path

_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from meal_analyzer.api.asgi import app  # noqa: E402

__all__ = ["app"]
