"""
Environment variable loading helpers.

- Loads .env from the project root when available (python-dotenv).
- Small typed getters used by settings.py; no validation policy lives here.
"""

from __future__ import annotations

import os
from pathlib import Path

# Project root: config is solwatch/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"


def load_solwatch_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides real env."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def redact_token(token: str) -> str:
    if not token:
        return "(empty)"
    if len(token) > 6:
        return token[:6] + "...(redacted)"
    return "***"


def redact_url(url: str) -> str:
    """Mask the api-key query value in a Helius-style URL."""
    if "api-key=" not in url:
        return url
    head, _, tail = url.partition("api-key=")
    end = len(tail)
    for sep in ("&", ";"):
        idx = tail.find(sep)
        if idx != -1:
            end = min(end, idx)
    return head + "api-key=***" + tail[end:]
