"""Pydantic request/response schemas for the IrisX API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from irisx.ml.geometry import Point, Rect
    from irisx.ml.pipeline import EyeResult, PipelineResult


class PointModel(BaseModel):
    """A pixel position in the uploaded image."""

    x: int
    y: int

    @classmethod
    def from_point(cls, point: Point) -> PointModel:
        return cls(x=point.x, y=point.y)


class RegionModel(BaseModel):
    """An absolute pixel rectangle; may extend past the image borders."""

    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_rect(cls, rect: Rect) -> RegionModel:
        return cls(x=rect.x, y=rect.y, width=rect.width, height=rect.height)


class EyeLandmarks(BaseModel):
    """Eye region with its contour and iris points."""

    roi: RegionModel | None = None
    contour: list[PointModel] = Field(default_factory=list, description="71 eye contour points")
    iris: list[PointModel] = Field(default_factory=list, description="5 iris points, center first")

    @classmethod
    def from_result(cls, eye: EyeResult) -> EyeLandmarks:
        return cls(
            roi=None if eye.roi.empty else RegionModel.from_rect(eye.roi),
            contour=[PointModel.from_point(p) for p in eye.contour],
            iris=[PointModel.from_point(p) for p in eye.iris],
        )


class LandmarksResponse(BaseModel):
    """Face, eye and iris landmarks for the most confident face."""

    face_found: bool
    score: float = Field(description="Detection confidence of the selected face")
    face_roi: RegionModel | None = None
    face_landmarks: list[PointModel] = Field(default_factory=list, description="468 face mesh points")
    left_eye: EyeLandmarks = Field(default_factory=EyeLandmarks)
    right_eye: EyeLandmarks = Field(default_factory=EyeLandmarks)

    @classmethod
    def from_result(cls, result: PipelineResult) -> LandmarksResponse:
        if not result.face_found:
            return cls(face_found=False, score=0.0)
        return cls(
            face_found=True,
            score=result.detection.score,
            face_roi=RegionModel.from_rect(result.face_roi),
            face_landmarks=[PointModel.from_point(p) for p in result.face_landmarks],
            left_eye=EyeLandmarks.from_result(result.left_eye),
            right_eye=EyeLandmarks.from_result(result.right_eye),
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    detector: str
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    task: str = Field(description="Model task: 'face_detection', 'face_landmark', or 'iris_landmark'")
    status: str = Field(description="Model status: 'active' or 'available'")
    license: str


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
