"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vibex.api.errors import setup_error_handlers
from vibex.config import settings
from vibex.core.logging import setup_logging
from vibex.db.database import engine, Base
from vibex.db.redis import close_notification_client

setup_logging(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables (dev only; use migrations in production)
    import vibex.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Shutdown: close connections
    await engine.dispose()
    await close_notification_client()


app = FastAPI(
    title="Vibex Session API",
    description="Session lifecycle, participation and reputation engine for campus sessions",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_error_handlers(app)

# --- Routes ---
from vibex.api.routes import sessions, reputation  # noqa: E402

app.include_router(sessions.router, prefix="/api/sessions", tags=["sessions"])
app.include_router(reputation.router, prefix="/api/reputation", tags=["reputation"])


@app.get("/health")
async def health_check():
    return {"status": "ok"}
