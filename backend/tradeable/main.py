from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from tradeable.api.routes import router
from tradeable.config.settings import Settings, settings as default_settings
from tradeable.db.session import create_tables
from tradeable.services import build_services
from tradeable.validation.validator import ensure_valid_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # request logs would otherwise carry API keys in query strings
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or default_settings
    configure_logging(app_settings.log_level)
    ensure_valid_settings(app_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app_settings.create_tables_on_startup:
            await create_tables()
        services = build_services(app_settings)
        app.state.services = services
        await services.aggregator.warm()
        services.aggregator.start()
        logger.info("Tradeable services started")
        try:
            yield
        finally:
            await services.aclose()
            logger.info("Tradeable services stopped")

    app = FastAPI(title="Tradeable", lifespan=lifespan)
    app.include_router(router)
    return app
