"""Game avatar studio: self description in, game-styled avatar image out."""
from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

__version__ = "0.1.0"

_SERVER_DIR = Path(__file__).resolve().parent.parent

# Credentials live in .env; .env.local holds per-developer overrides and wins.
for _name, _override in ((".env", False), (".env.local", True)):
    load_dotenv(_SERVER_DIR / _name, override=_override)
