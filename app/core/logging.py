import logging
import sys

from app.core.config import get_settings

_configured = False


def configure_logging() -> None:
    """Configure root logging once per process."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = getattr(logging, str(settings.log_level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "alembic", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True
