"""relayq API — FastAPI entry point.

Builds a QueueProcessor, starts it in the lifespan hook, and mounts the
monitoring router under /api/queue.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.routes import router as queue_router
from relayq.config import QueueConfig
from relayq.execution.http_executor import HttpExecutor
from relayq.logging_conf import setup_logging
from relayq.observability import setup_tracing
from relayq.processing.processor import QueueProcessor
from relayq.resilience.queue import DurableOrderedQueue
from relayq.storage.base import InMemoryStore
from relayq.storage.sql import SqlKeyValueStore

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

DATABASE_URL = os.getenv("RELAYQ_DATABASE_URL")
START_ONLINE = os.getenv("RELAYQ_START_ONLINE", "true").lower() == "true"


def build_processor(config: QueueConfig | None = None) -> QueueProcessor:
    """Processor wired from environment settings."""
    config = config or QueueConfig.from_env()
    store = SqlKeyValueStore.from_url(DATABASE_URL) if DATABASE_URL else InMemoryStore()
    queue = DurableOrderedQueue(store, config)
    return QueueProcessor(queue, HttpExecutor(), online=START_ONLINE, tracer=setup_tracing())


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

def create_app(processor: QueueProcessor | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the processor on startup, drain and persist on shutdown."""
        setup_logging()
        proc = processor or build_processor()
        store = proc.queue.store
        if isinstance(store, SqlKeyValueStore):
            await store.create_tables()
        app.state.processor = proc
        await proc.start()
        yield
        await proc.stop()
        if isinstance(proc.executor, HttpExecutor):
            await proc.executor.aclose()
        if isinstance(store, SqlKeyValueStore):
            await store.close()

    app = FastAPI(
        title="relayq",
        description="Durable, priority-ordered retry queue with dead-letter capture",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(queue_router, prefix="/api/queue", tags=["Queue"])

    @app.get("/health")
    async def health():
        proc = app.state.processor
        return {"status": "healthy", "version": "0.1.0", "online": proc.is_online}

    return app


app = create_app()
