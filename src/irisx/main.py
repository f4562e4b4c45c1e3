"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from irisx.api.routes import router
from irisx.config import get_settings
from irisx.ml.inference import InferencePool
from irisx.ml.model_manager import OnnxModelManager
from irisx.ml.pipeline import PipelinePool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load models and pipelines on startup, release them on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting IrisX (device=%s, max_concurrent=%s, detector=%s, models_dir=%s)",
        settings.device,
        settings.max_concurrent,
        settings.detector_variant,
        settings.models_dir,
    )

    model_manager = OnnxModelManager(settings)
    app.state.model_manager = model_manager
    pipelines = PipelinePool.from_settings(settings, model_manager)
    app.state.inference_pool = InferencePool(settings, pipelines)

    logger.info("IrisX ready")
    yield

    logger.info("Shutting down IrisX")
    app.state.inference_pool.shutdown()
    model_manager.shutdown()
    logger.info("IrisX shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="IrisX",
        description="Face, eye and iris landmark inference API",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()
