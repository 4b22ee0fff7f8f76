"""Configuration helpers for the scheduler client."""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

DEFAULT_BASE_URL = "http://192.168.4.1"
DEFAULT_TIMEOUT = 10


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _candidate_env_paths(start: Path) -> Iterable[Path]:
    """Yield the override path, then .env files from ``start`` upward."""
    override = os.environ.get("ES32_ENV_FILE")
    if override:
        yield Path(override).expanduser()

    for directory in (start, *start.parents):
        yield directory / ".env"


def _discover_env_path() -> Path | None:
    """Return the first .env path that exists, if any."""
    for candidate in _candidate_env_paths(Path.cwd()):
        if candidate.exists():
            return candidate
    return None


def _load_env_file(path: Path | None = None) -> None:
    """Populate os.environ with values from a .env file if present."""
    env_path = path or _discover_env_path()
    if env_path is None or not env_path.exists():
        logger.debug("No .env file discovered for configuration")
        return

    logger.bind(path=str(env_path)).info("Loading environment variables from .env")
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        # Existing environment variables win over the file.
        os.environ.setdefault(key, value)


_load_env_file()


@dataclass(frozen=True)
class Settings:
    """Typed accessors for configuration derived from the environment."""

    device_base_url: str
    request_timeout: int
    live_sync: bool

    @property
    def websocket_url(self) -> str:
        """Return the live-sync endpoint matching the device base URL."""
        base = self.device_base_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        return f"{base}/ws/scheduler"

    @classmethod
    def from_env(cls) -> Settings:
        base_url = os.environ.get("ES32_BASE_URL", DEFAULT_BASE_URL)

        raw_timeout = os.environ.get("ES32_TIMEOUT")
        try:
            timeout = int(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
        except ValueError as exc:
            raise RuntimeError(
                f"ES32_TIMEOUT must be an integer number of seconds, got {raw_timeout!r}."
            ) from exc
        if timeout <= 0:
            raise RuntimeError("ES32_TIMEOUT must be greater than zero.")

        live_sync_env = os.environ.get("ES32_LIVE_SYNC")
        live_sync = _parse_bool(live_sync_env) if live_sync_env is not None else False

        logger.bind(base_url=base_url, timeout=timeout, live_sync=live_sync).info(
            "Configuration loaded from environment"
        )

        return cls(
            device_base_url=base_url,
            request_timeout=timeout,
            live_sync=live_sync,
        )


settings = Settings.from_env()
