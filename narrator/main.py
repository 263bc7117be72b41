import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from narrator.config import ensure_dev_database_schema, settings
from narrator.db import session as db_session
from narrator.modules.session.router import router as session_router
from narrator.modules.telemetry.router import router as telemetry_router
from narrator.modules.theme.router import router as theme_router
from narrator.modules.theme.store import get_theme_store

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, str(settings.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    configure_logging()
    if settings.env == "dev":
        ensure_dev_database_schema(str(db_session.engine.url))
    themes = get_theme_store().theme_ids()
    logger.info("narrator starting env=%s themes=%s provider=%s", settings.env, themes, settings.llm_provider)
    yield


def create_app() -> FastAPI:
    application = FastAPI(title="Narrator Backend", lifespan=_lifespan)

    @application.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    application.include_router(session_router)
    application.include_router(theme_router)
    application.include_router(telemetry_router)
    return application


app = create_app()


def run() -> None:
    uvicorn.run(
        "narrator.main:app",
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
