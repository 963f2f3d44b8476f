"""Runtime settings for notekeeper.

Everything is read from the environment when ``load_settings()`` is called:

- ``APP_DATA_DIR``: where the key-value files live (default: <repo>/data)
- ``BCRYPT_ROUNDS``: optional bcrypt cost; invalid values are ignored
- ``NOTEKEEPER_LOG_LEVEL``: stdlib logging level name (default: INFO)
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# repository_root/data (we are in backend/notekeeper/)
DEFAULT_DATA_DIR = Path(__file__).resolve().parents[2] / "data"


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    bcrypt_rounds: Optional[int] = None
    log_level: str = "INFO"


def _int_or_none(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def load_settings() -> Settings:
    return Settings(
        data_dir=Path(os.getenv("APP_DATA_DIR", str(DEFAULT_DATA_DIR))),
        bcrypt_rounds=_int_or_none(os.getenv("BCRYPT_ROUNDS")),
        log_level=os.getenv("NOTEKEEPER_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
