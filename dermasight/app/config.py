"""
Configuration
=============
All settings come from environment variables. Values that can change
between requests (the API key) are read at call time so a running proxy
picks up a rotated secret without a restart.
"""

from __future__ import annotations

import logging
import os

from dermasight.app.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Upstream classification service (Autoderm)
# ---------------------------------------------------------------------------
API_KEY_ENV = "AUTODERM_API_KEY"
AUTODERM_API_URL = os.getenv("AUTODERM_API_URL", "https://autoderm.ai/v1/query")
AUTODERM_MODEL = os.getenv("AUTODERM_MODEL", "autoderm_v2_2")
AUTODERM_LANGUAGE = os.getenv("AUTODERM_LANGUAGE", "en")
AUTODERM_TIMEOUT = float(os.getenv("AUTODERM_TIMEOUT", "30"))

# ---------------------------------------------------------------------------
# Proxy server / client
# ---------------------------------------------------------------------------
PROXY_HOST = os.getenv("PROXY_HOST", "0.0.0.0")
PROXY_PORT = int(os.getenv("PROXY_PORT", "8000"))
PROXY_URL = os.getenv("PROXY_URL", "http://localhost:8000/analyze-skin")

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///dermasight.db")

# ---------------------------------------------------------------------------
# Client-side limits and thresholds
# ---------------------------------------------------------------------------
MAX_IMAGE_BYTES = 10 * 1024 * 1024
HIGH_RISK_THRESHOLD = 70

# Local email sign-in form for development; hosted OIDC sign-in otherwise.
DEV_SIGN_IN = os.getenv("DERMASIGHT_DEV_SIGN_IN", "").strip().lower() in ("1", "true", "yes")


def get_api_key() -> str:
    """Return the Autoderm API key or raise ``ConfigurationError``."""
    key = os.getenv(API_KEY_ENV, "").strip()
    if not key:
        raise ConfigurationError(f"{API_KEY_ENV} not configured")
    return key


def api_key_configured() -> bool:
    return bool(os.getenv(API_KEY_ENV, "").strip())


def configure_logging(level: str | None = None) -> None:
    """Set up root logging once for the proxy and the Streamlit client."""
    level_name = (level or os.getenv("DERMASIGHT_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
