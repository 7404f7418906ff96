"""
Eve Assistant — Entry Point.

`python main.py` starts the Telegram channel. Email delivery (Resend) and
accounting sync (Xero) switch on when their settings are present.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from eve.bot.telegram_bot import main
from eve.config import settings

logger = logging.getLogger("eve")


def _log_startup() -> None:
    email_on = bool(settings.RESEND_API_KEY and settings.EMAIL_FROM)
    logger.info("LLM provider: %s", settings.LLM_PROVIDER)
    logger.info("Database: %s", settings.DATABASE_PATH)
    logger.info("Invoice email: %s", "enabled" if email_on else "disabled")
    logger.info("Xero sync: %s", "enabled" if settings.xero_enabled else "disabled")


if __name__ == "__main__":
    _log_startup()
    main()
