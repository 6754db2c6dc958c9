"""
FastAPI application entry point for the chatweave API.

Serves search, conversation browsing, related-conversation lookup and
consolidation over the local store.
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatweave import __version__
from chatweave.api.routes import conversations, health, search

logger = logging.getLogger(__name__)

app = FastAPI(title="chatweave API", version=__version__)

# Allow origins from environment variable or default to localhost
cors_origins = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(conversations.router, prefix="/api", tags=["conversations"])
app.include_router(search.router, prefix="/api", tags=["search"])
app.include_router(health.router, prefix="/api", tags=["health"])
