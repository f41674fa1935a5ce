"""Make the repository importable and its ``.env`` visible when running scripts directly."""

from __future__ import annotations

import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parent.parent


def add_root() -> Path:
    """Prepend the repository root to ``sys.path`` and load ``ROOT/.env`` without overriding the shell."""
    root_str = str(ROOT)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)
    load_dotenv(ROOT / ".env", override=False)
    return ROOT
