"""
Application settings and environment configuration.

Responsibilities:
- Load configuration from environment variables and .env files.
- Validate required settings and provide defaults for optional ones; all
  problems are reported together in one ConfigError.
- Expose a frozen Settings object (stream/enrichment/RPC endpoints,
  Telegram delivery target, store path, API bind address, log level).
"""

from __future__ import annotations

from dataclasses import dataclass

from solwatch.config.env import (
    MAINNET_RPC_URL,
    env_str,
    load_solwatch_env,
    redact_token,
    redact_url,
)
from solwatch.core.exceptions import ConfigError

ALLOWED_COMMITMENTS = ("processed", "confirmed", "finalized")
ALLOWED_LOG_LEVELS = ("debug", "info", "warn", "warning", "error")

DEFAULT_DB_PATH = "solwatch.db"
DEFAULT_COMMITMENT = "processed"
DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 8000
DEFAULT_ANALYSIS_TIMEOUT_SEC = 20.0


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    telegram_admin_chat_id: int
    helius_wss: str
    helius_api_url: str
    solana_rpc_url: str = MAINNET_RPC_URL
    commitment: str = DEFAULT_COMMITMENT
    db_path: str = DEFAULT_DB_PATH
    log_level: str = "info"
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT
    api_key: str = ""
    analysis_timeout_sec: float = DEFAULT_ANALYSIS_TIMEOUT_SEC

    def redacted_summary(self) -> str:
        """Safe one-line snapshot for startup logs; never leaks secrets."""
        return (
            f"config{{ commitment={self.commitment}, db={self.db_path}, "
            f"helius_wss={redact_url(self.helius_wss)}, helius_api={redact_url(self.helius_api_url)}, "
            f"solana_rpc={redact_url(self.solana_rpc_url)}, "
            f"telegram_bot_token={redact_token(self.telegram_bot_token)}, "
            f"admin_chat_id={self.telegram_admin_chat_id}, log_level={self.log_level}, "
            f"api={self.api_host}:{self.api_port}, api_auth={'on' if self.api_key else 'off'} }}"
        )


def load_settings() -> Settings:
    """
    Read env (after loading .env), apply defaults, validate.

    Raises:
        ConfigError: listing every invalid or missing variable.
    """
    load_solwatch_env()
    errors: list[str] = []

    bot_token = env_str("TELEGRAM_BOT_TOKEN")
    if not bot_token:
        errors.append("TELEGRAM_BOT_TOKEN is required (get it from @BotFather)")

    admin_chat_id = 0
    admin_raw = env_str("TELEGRAM_ADMIN_CHAT_ID")
    if not admin_raw:
        errors.append("TELEGRAM_ADMIN_CHAT_ID is required (your numeric chat id)")
    else:
        try:
            admin_chat_id = int(admin_raw)
        except ValueError:
            admin_chat_id = 0
        if admin_chat_id == 0:
            errors.append(f"TELEGRAM_ADMIN_CHAT_ID must be a valid integer, got {admin_raw!r}")

    helius_wss = env_str("HELIUS_WSS")
    if not helius_wss:
        errors.append("HELIUS_WSS is required (Helius WebSocket RPC URL, incl. api key)")
    elif not helius_wss.lower().startswith("wss://"):
        errors.append(f"HELIUS_WSS must start with wss://, got {redact_url(helius_wss)!r}")

    helius_api_url = env_str("HELIUS_API_URL")
    if not helius_api_url:
        errors.append("HELIUS_API_URL is required (Helius HTTP API URL for fetching transactions)")
    elif not helius_api_url.lower().startswith("https://"):
        errors.append(f"HELIUS_API_URL must start with https://, got {redact_url(helius_api_url)!r}")

    commitment = env_str("COMMITMENT", DEFAULT_COMMITMENT).lower()
    if commitment not in ALLOWED_COMMITMENTS:
        errors.append(
            f"COMMITMENT must be one of {'|'.join(ALLOWED_COMMITMENTS)}, got {commitment!r}"
        )

    log_level = env_str("LOG_LEVEL", "info").lower()
    if log_level not in ALLOWED_LOG_LEVELS:
        errors.append(f"LOG_LEVEL must be one of debug|info|warn|error, got {log_level!r}")

    api_port = DEFAULT_API_PORT
    port_raw = env_str("API_PORT", str(DEFAULT_API_PORT))
    try:
        api_port = int(port_raw)
    except ValueError:
        errors.append(f"API_PORT must be an integer, got {port_raw!r}")

    analysis_timeout = DEFAULT_ANALYSIS_TIMEOUT_SEC
    timeout_raw = env_str("ANALYSIS_TIMEOUT_SEC", str(DEFAULT_ANALYSIS_TIMEOUT_SEC))
    try:
        analysis_timeout = float(timeout_raw)
        if analysis_timeout <= 0:
            raise ValueError
    except ValueError:
        errors.append(f"ANALYSIS_TIMEOUT_SEC must be a positive number, got {timeout_raw!r}")

    if errors:
        raise ConfigError("config validation error:\n  - " + "\n  - ".join(errors))

    return Settings(
        telegram_bot_token=bot_token,
        telegram_admin_chat_id=admin_chat_id,
        helius_wss=helius_wss,
        helius_api_url=helius_api_url,
        solana_rpc_url=env_str("SOLANA_RPC_URL", MAINNET_RPC_URL),
        commitment=commitment,
        db_path=env_str("DB_PATH", DEFAULT_DB_PATH),
        log_level=log_level,
        api_host=env_str("API_HOST", DEFAULT_API_HOST),
        api_port=api_port,
        api_key=env_str("API_KEY"),
        analysis_timeout_sec=analysis_timeout,
    )
