from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging
import os
import sys

from stp.domain.errors import ValidationError


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    exports_dir: Path


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "SalesTransactionProcessor") -> AppPaths:
    if sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    exports = base / "exports"
    db = base / "transactions.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)
    exports.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, exports_dir=exports)


@dataclass(frozen=True)
class Settings:
    db_path: Path
    logs_dir: Path
    log_level: int = logging.INFO
    low_stock_threshold: int = 10
    busy_timeout: float = 5.0

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None, paths: AppPaths | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        paths = paths or get_app_paths()

        db_raw = env.get("STP_DB_PATH", "").strip()
        db_path = Path(db_raw) if db_raw else paths.db_path

        level_name = env.get("STP_LOG_LEVEL", "INFO").strip().upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            raise ValidationError(f"Unknown log level: {level_name}", field="STP_LOG_LEVEL", value=level_name)

        try:
            threshold = int(env.get("STP_LOW_STOCK_THRESHOLD", "10"))
            timeout = float(env.get("STP_BUSY_TIMEOUT", "5.0"))
        except ValueError as e:
            raise ValidationError(f"Invalid numeric setting: {e}") from e
        if threshold < 0:
            raise ValidationError("Low stock threshold must be >= 0.", field="STP_LOW_STOCK_THRESHOLD", value=threshold)
        if timeout <= 0:
            raise ValidationError("Busy timeout must be > 0.", field="STP_BUSY_TIMEOUT", value=timeout)

        return cls(
            db_path=db_path,
            logs_dir=paths.logs_dir,
            log_level=level,
            low_stock_threshold=threshold,
            busy_timeout=timeout,
        )
