from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path


def parse_paths(raw: str | None) -> tuple[Path, ...] | None:
    if not raw:
        return None
    return tuple(Path(p.strip()) for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    host: str = field(default_factory=lambda: os.getenv("XCBRIDGE_HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("XCBRIDGE_PORT", "9090")))
    api_key: str | None = field(
        default_factory=lambda: os.getenv("XCBRIDGE_API_KEY") or None
    )
    log_level: str = field(
        default_factory=lambda: os.getenv("XCBRIDGE_LOG_LEVEL", "info")
    )
    allowed_paths: tuple[Path, ...] | None = field(
        default_factory=lambda: parse_paths(os.getenv("XCBRIDGE_ALLOWED_PATHS"))
    )
    xcodebuild: tuple[str, ...] = field(
        default_factory=lambda: tuple(
            shlex.split(os.getenv("XCBRIDGE_XCODEBUILD", "xcodebuild"))
        )
    )
    max_completed_jobs: int = field(
        default_factory=lambda: int(os.getenv("XCBRIDGE_MAX_COMPLETED_JOBS", "100"))
    )
    cleanup_interval_sec: float = field(
        default_factory=lambda: float(os.getenv("XCBRIDGE_CLEANUP_INTERVAL_SEC", "60"))
    )
    log_queue_size: int = field(
        default_factory=lambda: int(os.getenv("XCBRIDGE_LOG_QUEUE_SIZE", "100"))
    )
    poll_interval_sec: float = field(
        default_factory=lambda: float(os.getenv("XCBRIDGE_POLL_INTERVAL_SEC", "0.1"))
    )

    def is_path_allowed(self, path: str | Path) -> bool:
        """Check a path against the allowlist.

        Both the candidate and every allowed root are canonicalized (symlinks
        resolved) before comparison, so a path that only shares a textual
        prefix with a root is rejected. Paths that do not exist cannot be
        canonicalized and are rejected. Without an allowlist every path is
        permitted.
        """
        if self.allowed_paths is None:
            return True
        try:
            candidate = Path(path).resolve(strict=True)
        except (OSError, RuntimeError):
            return False
        for root in self.allowed_paths:
            try:
                allowed = root.resolve(strict=True)
            except (OSError, RuntimeError):
                continue
            if candidate.is_relative_to(allowed):
                return True
        return False

    @property
    def bind_address(self) -> str:
        return f"{self.host}:{self.port}"


def get_settings() -> Settings:
    return Settings()
