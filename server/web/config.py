"""Environment-derived settings for the application server."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


ROOT_DIR = Path(__file__).resolve().parents[2]
PRODUCTION_PORT = 80
DEVELOPMENT_PORT = 3000
STATIC_MAX_AGE = 31536000


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, resolved once at start."""

    environment: str
    port: int
    host: str
    public_dir: Path
    static_max_age: int
    log_level: int
    trust_proxy: bool
    drain_timeout: Optional[float]

    @property
    def production(self) -> bool:
        return self.environment == "production"

    @property
    def development(self) -> bool:
        return self.environment == "development"

    @property
    def static_caching(self) -> bool:
        return not self.development


def load_settings(environ: Mapping[str, str] = os.environ) -> Settings:
    environment = environ.get("APP_ENV", "").strip().lower()
    production = environment == "production"
    drain_timeout = environ.get("DRAIN_TIMEOUT", "").strip()
    return Settings(
        environment=environment,
        port=PRODUCTION_PORT if production else DEVELOPMENT_PORT,
        host=environ.get("HOST", "0.0.0.0"),
        public_dir=Path(environ.get("PUBLIC_DIR", ROOT_DIR / "public")),
        static_max_age=STATIC_MAX_AGE,
        log_level=logging.ERROR if production else logging.INFO,
        trust_proxy=environ.get("TRUST_PROXY", "1") != "0",
        drain_timeout=float(drain_timeout) if drain_timeout else None,
    )
