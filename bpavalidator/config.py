from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from bpavalidator.core.errors import ConfigError

DEFAULT_RULES_PATH = Path(__file__).parent / "data" / "bpa-rules.json"


@dataclass(frozen=True)
class Settings:
    rules_path: Path = DEFAULT_RULES_PATH
    log_level: str = "INFO"
    log_format: str = "console"
    max_workers: int = 1


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    try:
        return max(1, int(raw)) if raw else default
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


@lru_cache
def get_settings() -> Settings:
    """
    Settings come from the process environment. The CLI calls load_dotenv()
    first, so a .env file at the working directory is honoured.
    """
    rules_path = os.environ.get("BPA_RULES_PATH")
    return Settings(
        rules_path=Path(rules_path) if rules_path else DEFAULT_RULES_PATH,
        log_level=os.environ.get("BPA_LOG_LEVEL", "INFO"),
        log_format=os.environ.get("BPA_LOG_FORMAT", "console"),
        max_workers=_int_env("BPA_MAX_WORKERS", 1),
    )
