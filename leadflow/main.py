"""
leadflow - lead automation API
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from leadflow.api.error_handlers import register_exception_handlers
from leadflow.api.routes import health, jobs, webhook_meta
from leadflow.core.config import settings
from leadflow.core.logging import setup_logging
from leadflow.services.automations.conditional import ConditionalStepActivator
from leadflow.services.automations.reply_queue import ReplyQueue
from leadflow.services.automations.types import ReplyEvent
from leadflow.services.http_client import close_http_client
from leadflow.services.supabase import get_supabase_client

setup_logging()
logger = logging.getLogger(__name__)


async def handle_reply(event: ReplyEvent):
    """Reply queue handler: activate conditional steps."""
    return await ConditionalStepActivator(get_supabase_client()).handle_reply(event)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown."""
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")
    app.state.reply_queue = ReplyQueue(handle_reply)
    app.state.reply_queue.start()
    yield
    logger.info(f"Stopping {settings.APP_NAME}")
    await app.state.reply_queue.stop()
    app.state.reply_queue = None
    await close_http_client()


app = FastAPI(
    title=settings.APP_NAME,
    description="Lead enrollment, scheduling and dispatch engine",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

app.include_router(health.router, tags=["Health"])
app.include_router(jobs.router)
app.include_router(webhook_meta.router)


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "status": "running",
        "docs": "/docs",
    }
