"""
Main entrypoint: validate config, then serve the FastAPI app whose lifespan
runs the watch service (subscriptions, analysis, delivery).

Env: TELEGRAM_BOT_TOKEN, TELEGRAM_ADMIN_CHAT_ID, HELIUS_WSS, HELIUS_API_URL,
plus optional SOLANA_RPC_URL, COMMITMENT, DB_PATH, LOG_LEVEL, API_HOST,
API_PORT, API_KEY, ANALYSIS_TIMEOUT_SEC (see .env or the process environment).
"""

import sys

from solwatch.config import load_settings
from solwatch.core.exceptions import ConfigError
from solwatch.solwatch_logging import configure_structlog, get_logger

logger = get_logger("main")


def main() -> None:
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        sys.exit(1)

    configure_structlog(settings.log_level)
    logger.info("main_config_loaded", config=settings.redacted_summary())

    import uvicorn

    from solwatch.api_server.server import create_app

    app = create_app(settings)
    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="warning" if settings.log_level in ("warn", "warning") else settings.log_level,
    )


if __name__ == "__main__":
    main()
