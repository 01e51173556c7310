# stocklink/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from stocklink import __version__
from stocklink.core.config import get_settings
from stocklink.core.logging_config import configure_logging
from stocklink.database import create_engine, create_session_factory
from stocklink.routes import health, stock, sync

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging("DEBUG" if settings.DEBUG else settings.LOG_LEVEL)

    engine = create_engine(settings.DATABASE_URL)
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    logger.info(f"stocklink {__version__} started ({settings.ENVIRONMENT})")
    try:
        yield
    finally:
        await engine.dispose()


app = FastAPI(title="stocklink", version=__version__, lifespan=lifespan)

app.include_router(health.router)
app.include_router(stock.router)
app.include_router(sync.router)
