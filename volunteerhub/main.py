"""Main FastAPI application for the VolunteerHub messaging service."""
import logging

from fastapi import FastAPI

from volunteerhub import __version__
from volunteerhub.db.config import engine
from volunteerhub.db.init import init_db
from volunteerhub.middleware.cors import add_cors_middleware
from volunteerhub.realtime.feed import ChangeFeed
from volunteerhub.routers import messages_router, pages_router, ws_router
from volunteerhub.services.message_store import MessageStore
from volunteerhub.utils.metrics import metrics_collector

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="VolunteerHub Messaging API",
    description="Conversations, live message feeds and optimistic sends for VolunteerHub",
    version=__version__,
)

# Add CORS middleware
add_cors_middleware(app)


@app.on_event("startup")
async def startup_event():
    """Initialize database tables, the change feed and the message store."""
    try:
        init_db()
        logger.info("[SUCCESS] Database tables initialized successfully.")
    except Exception as e:
        logger.warning(f"[WARNING] Database initialization failed: {str(e)}")
        logger.warning("[WARNING] Server will continue but database operations may fail.")

    app.state.feed = ChangeFeed()
    app.state.store = MessageStore(engine, app.state.feed)
    logger.info("[SUCCESS] Application startup complete.")


@app.on_event("shutdown")
async def shutdown_event():
    """Release every live subscription."""
    await app.state.feed.close()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/")
async def root():
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to the VolunteerHub Messaging API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/metrics")
async def metrics():
    """Messaging counters and timers."""
    return metrics_collector.get_metrics()


app.include_router(messages_router, prefix="/api")  # /api/messages/...
app.include_router(pages_router)  # /messages, /messages/chat
app.include_router(ws_router)  # /ws/messages


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "volunteerhub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
