"""CORS configuration for the messaging front end."""
import logging

from fastapi.middleware.cors import CORSMiddleware

from volunteerhub.config import ENVIRONMENT, FRONTEND_URL

logger = logging.getLogger(__name__)

# Base allowed origins for development
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

# Add production frontend URL if provided
if FRONTEND_URL and FRONTEND_URL not in ALLOWED_ORIGINS:
    ALLOWED_ORIGINS.append(FRONTEND_URL)


def add_cors_middleware(app):
    """Add CORS middleware to the FastAPI application."""
    if ENVIRONMENT == "production":
        logger.info(f"[PROD] Using production CORS for {FRONTEND_URL}")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[FRONTEND_URL],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        logger.info(f"[DEV] Using development CORS with origins: {ALLOWED_ORIGINS}")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
