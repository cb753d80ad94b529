# =============================================================================
# savvi_core/config.py
# Application Configuration for savviFinance
# =============================================================================
"""
Configuration loading.

Supabase credentials are read from Streamlit secrets first:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

then from the environment or a .env file (SUPABASE_URL, SUPABASE_ANON_KEY or SUPABASE_KEY).
Missing credentials never crash startup: placeholders are substituted and
every remote call fails through the normal error path.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from savvi_core.logging import get_logger

logger = get_logger(__name__)

PLACEHOLDER_URL = "https://placeholder.supabase.co"
PLACEHOLDER_KEY = "placeholder-key"

DEFAULT_STORAGE_DIR = Path(__file__).parent.parent / "local_data"
DEFAULT_REDIRECT_URL = "http://localhost:8501/reset-password"


@dataclass
class Timeouts:
    """Remote call budgets and auth-event timing, in seconds."""
    session: float = 5.0        # initial get-session
    auth: float = 10.0          # sign in / sign up / reset / profile update
    probe: float = 8.0          # schema existence probe
    collection: float = 6.0     # each of the four snapshot queries
    debounce: float = 0.1       # auth event debounce window
    dedupe: float = 1.0         # identical auth event suppression window


@dataclass
class AppConfig:
    """Resolved application configuration."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    storage_dir: Path = DEFAULT_STORAGE_DIR
    redirect_url: str = DEFAULT_REDIRECT_URL
    timeouts: Timeouts = field(default_factory=Timeouts)
    # Keep previously cached collections when a refresh only partially loads
    merge_partial_cache: bool = False

    @property
    def has_credentials(self) -> bool:
        return bool(self.supabase_url) and bool(self.supabase_key)

    @property
    def resolved_url(self) -> str:
        return self.supabase_url or PLACEHOLDER_URL

    @property
    def resolved_key(self) -> str:
        return self.supabase_key or PLACEHOLDER_KEY

    def diagnostics(self) -> Dict[str, Any]:
        """Configuration facts shown on the connection error screen."""
        url = self.supabase_url
        return {
            "has_url": bool(url),
            "has_key": bool(self.supabase_key),
            "url_valid": "supabase" in url if url else False,
            "url": f"{url[:20]}..." if url else "Not set",
        }


def _read_streamlit_secrets() -> Dict[str, str]:
    """Return the [supabase] secrets table, or an empty dict outside Streamlit."""
    try:
        import streamlit as st

        if "supabase" in st.secrets:
            return dict(st.secrets["supabase"])
    except Exception as e:
        # No secrets.toml, or not running under Streamlit
        logger.debug(f"Streamlit secrets unavailable: {e}")
    return {}


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(**overrides: Any) -> AppConfig:
    """
    Build the AppConfig from secrets, environment and explicit overrides.

    Args:
        **overrides: Field values that win over secrets and environment

    Returns:
        AppConfig
    """
    load_dotenv()
    secrets = _read_streamlit_secrets()

    url = secrets.get("url") or os.getenv("SUPABASE_URL")
    key = (
        secrets.get("key")
        or os.getenv("SUPABASE_ANON_KEY")
        or os.getenv("SUPABASE_KEY")
    )

    config = AppConfig(
        supabase_url=url,
        supabase_key=key,
        storage_dir=Path(os.getenv("SAVVI_STORAGE_DIR", str(DEFAULT_STORAGE_DIR))),
        redirect_url=os.getenv("SAVVI_REDIRECT_URL", DEFAULT_REDIRECT_URL),
        merge_partial_cache=_env_flag("SAVVI_MERGE_PARTIAL_CACHE"),
    )

    for name, value in overrides.items():
        if not hasattr(config, name):
            raise TypeError(f"Unknown config field: {name}")
        setattr(config, name, value)

    if not config.supabase_url:
        logger.error("SUPABASE_URL is not set; using placeholder configuration")
    if not config.supabase_key:
        logger.error("SUPABASE_ANON_KEY is not set; using placeholder configuration")

    return config


def get_supabase_config(config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Diagnostics for the connection error screen (never exposes the key)."""
    return (config or load_config()).diagnostics()
