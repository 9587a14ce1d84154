"""
Entry point — run the character sheet API under uvicorn.

    python -m api.main
"""

import logging
import os

import uvicorn

from api.app import create_app
from api.config import Settings

os.makedirs("logs", exist_ok=True)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler("logs/sheet_api.log", encoding="utf-8"),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger("SheetAPI")


def run():
    settings = Settings.from_env()
    if not settings.api_tokens and not settings.trust_user_header:
        logger.warning(
            "No SHEET_API_TOKENS configured and SHEET_TRUST_USER_HEADER is off; "
            "every character request will be rejected."
        )
    app = create_app(settings=settings)
    logger.info(f"Starting sheet API on {settings.host}:{settings.port} (store: {settings.store_backend})")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
