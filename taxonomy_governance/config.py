"""
Gateway Configuration
Environment-driven settings, read once at process start.

Module-level constants mirror the environment at import time; tests and
embedders build a GatewayConfig explicitly instead of patching globals.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

DEFAULT_DECISION_BACKEND_URL = "http://localhost:9000/v1/query"
DEFAULT_PROCESSING_ESTIMATE = "2-3 hours"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class GatewayConfig:
    use_live_backend: bool = False
    backend_token: Optional[str] = None
    backend_url: str = DEFAULT_DECISION_BACKEND_URL
    backend_timeout_seconds: float = 10.0
    processing_estimate: str = DEFAULT_PROCESSING_ESTIMATE
    audit_enabled: bool = False
    audit_db: dict[str, Any] = field(default_factory=dict)
    log_level: str = "INFO"

    @property
    def remote_enabled(self) -> bool:
        """The live backend is only used when switched on AND a token is set."""
        return self.use_live_backend and bool(self.backend_token)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GatewayConfig":
        env = os.environ if environ is None else environ
        return cls(
            use_live_backend=_flag(env.get("USE_LIVE_DECISION_BACKEND")),
            backend_token=env.get("DECISION_BACKEND_TOKEN") or None,
            backend_url=env.get("DECISION_BACKEND_URL") or DEFAULT_DECISION_BACKEND_URL,
            backend_timeout_seconds=float(env.get("DECISION_BACKEND_TIMEOUT_SECONDS", "10")),
            processing_estimate=env.get("PROCESSING_ESTIMATE") or DEFAULT_PROCESSING_ESTIMATE,
            audit_enabled=_flag(env.get("AUDIT_ENABLED")),
            audit_db={
                "host": env.get("AUDIT_DB_HOST", "localhost"),
                "port": int(env.get("AUDIT_DB_PORT", "5433")),
                "dbname": env.get("AUDIT_DB_NAME", "taxonomy_governance"),
                "user": env.get("AUDIT_DB_USER", "admin"),
                "password": env.get("AUDIT_DB_PASSWORD", ""),
            },
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Root logging setup for the gateway process."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


CONFIG = GatewayConfig.from_env()
