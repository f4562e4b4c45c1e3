"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request, UploadFile, status
from fastapi.responses import JSONResponse

from irisx.api.middleware import verify_api_key
from irisx.api.schemas import (
    ErrorResponse,
    HealthResponse,
    LandmarksResponse,
    ModelInfo,
    ModelsResponse,
)
from irisx.ml.model_manager import MODEL_REGISTRY, ModelTask
from irisx.ml.postprocess import get_variant
from irisx.ml.preprocessing import decode_image

if TYPE_CHECKING:
    from irisx.config import Settings
    from irisx.ml.inference import InferencePool
    from irisx.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_model_manager(request: Request) -> ModelManager:
    manager: ModelManager = request.app.state.model_manager
    return manager


def _active_models(settings: Settings) -> set[str]:
    detector = get_variant(settings.detector_variant).model_name
    return {
        name
        for name, spec in MODEL_REGISTRY.items()
        if name == detector or spec.task != ModelTask.FACE_DETECTION
    }


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


@router.post(
    "/landmarks",
    response_model=LandmarksResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Face, eye and iris landmarks of the most confident face",
)
async def landmarks(request: Request, file: UploadFile, iris: bool = True) -> LandmarksResponse | JSONResponse:
    """Detect the most confident face and return its landmarks in image pixels.

    With ``iris=false`` only the face stage runs and both eyes come back empty.
    """
    settings = _get_settings(request)
    pool = _get_inference_pool(request)

    data = await file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, f"File exceeds {settings.max_file_size} bytes")

    try:
        image = decode_image(data, settings.max_image_pixels)
    except ValueError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    try:
        result = await pool.analyze(image, with_iris=iris)
    except TimeoutError:
        logger.warning("Inference queue full; rejecting %s", file.filename)
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Inference queue is full, retry later")

    return LandmarksResponse.from_result(result)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    manager = _get_model_manager(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        detector=settings.detector_variant,
        models_loaded=manager.get_loaded_models(),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return known models and whether the current configuration uses them."""
    active = _active_models(_get_settings(request))
    return ModelsResponse(
        models=[
            ModelInfo(
                name=spec.name,
                task=spec.task,
                status="active" if spec.name in active else "available",
                license=spec.license,
            )
            for spec in MODEL_REGISTRY.values()
        ]
    )
