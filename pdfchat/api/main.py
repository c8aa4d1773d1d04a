"""
FastAPI application for hybrid question answering over PDF documents.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .deps import build_pipeline
from .routes import router


def _configure_logging() -> None:
    """Configure root logging from LOG_LEVEL."""
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    root_logger.setLevel(level)


_configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the query pipeline on startup; dispose of the engine on shutdown."""
    resources = await build_pipeline()
    app.state.pipeline = resources.pipeline
    app.state.vectors_loaded = resources.vectors_loaded
    yield
    if resources.engine is not None:
        await resources.engine.dispose()


app = FastAPI(
    title="PDF Chat API",
    description="Hybrid (full-text + vector) RAG over uploaded PDF documents with streamed answers",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
app.include_router(router)
