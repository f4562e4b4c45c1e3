"""Model manager: locate, download, load, and cache ONNX models.

Models are looked up in the local models directory first and downloaded from
HuggingFace otherwise. InferenceSessions are cached per model and shared by
every engine that wraps them; ``InferenceSession.run`` is thread-safe.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

if TYPE_CHECKING:
    from irisx.config import Settings

logger = logging.getLogger(__name__)


class ModelLoadError(RuntimeError):
    """The model file exists but could not be turned into an InferenceSession."""


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def ensure_downloaded(self, model_name: str) -> Path:
        """Ensure a model is available locally and return its file path."""
        ...

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached or newly created InferenceSession."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return names of currently loaded models."""
        ...

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


class ModelTask(StrEnum):
    FACE_DETECTION = "face_detection"
    FACE_LANDMARK = "face_landmark"
    IRIS_LANDMARK = "iris_landmark"


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX model."""

    name: str
    filename: str
    subfolder: str | None
    task: ModelTask
    license: str


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "face_detection_short": ModelSpec(
        name="face_detection_short",
        filename="face_detection_short.onnx",
        subfolder=None,
        task=ModelTask.FACE_DETECTION,
        license="Apache-2.0",
    ),
    "face_detection_full": ModelSpec(
        name="face_detection_full",
        filename="face_detection_full.onnx",
        subfolder=None,
        task=ModelTask.FACE_DETECTION,
        license="Apache-2.0",
    ),
    "face_landmark": ModelSpec(
        name="face_landmark",
        filename="face_landmark.onnx",
        subfolder=None,
        task=ModelTask.FACE_LANDMARK,
        license="Apache-2.0",
    ),
    "iris_landmark": ModelSpec(
        name="iris_landmark",
        filename="iris_landmark.onnx",
        subfolder=None,
        task=ModelTask.IRIS_LANDMARK,
        license="Apache-2.0",
    ),
}


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Finds or downloads model files and caches their ONNX sessions."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._models_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._sessions: dict[str, InferenceSession] = {}
        self._model_paths: dict[str, Path] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self, model_name: str) -> Path:
        """Return the local model file, downloading it from HuggingFace if missing."""
        spec = self._get_spec(model_name)

        if model_name in self._model_paths:
            path = self._model_paths[model_name]
            if path.exists():
                return path

        local = self._models_dir / (spec.subfolder or "") / spec.filename
        if local.exists():
            self._model_paths[model_name] = local
            logger.info("Using local model %s at %s", model_name, local)
            return local

        downloaded = Path(
            hf_hub_download(
                repo_id=self._settings.model_repo,
                filename=spec.filename,
                subfolder=spec.subfolder,
                local_dir=str(self._models_dir),
            )
        )
        self._model_paths[model_name] = downloaded
        logger.info("Downloaded %s to %s", model_name, downloaded)
        return downloaded

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached InferenceSession, creating one if needed.

        Raises:
            KeyError: If the model is not in the registry.
            ModelLoadError: If ONNX Runtime rejects the model file.
        """
        with self._lock:
            cached = self._sessions.get(model_name)
            if cached is not None:
                return cached

        model_path = self.ensure_downloaded(model_name)
        try:
            session = InferenceSession(
                str(model_path),
                sess_options=self._session_options,
                providers=self._providers,
            )
        except Exception as exc:
            raise ModelLoadError(f"Failed to load model '{model_name}' from {model_path}") from exc

        with self._lock:
            # Double-check: another thread may have created it while we loaded.
            existing = self._sessions.get(model_name)
            if existing is not None:
                return existing
            self._sessions[model_name] = session
            logger.info("Loaded session for %s", model_name)
            return session

    def get_loaded_models(self) -> list[str]:
        """Return names of models with active sessions."""
        with self._lock:
            return list(self._sessions.keys())

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        with self._lock:
            self._sessions.clear()
            logger.info("All model sessions cleared")

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _get_spec(model_name: str) -> ModelSpec:
        try:
            return MODEL_REGISTRY[model_name]
        except KeyError:
            raise KeyError(f"Unknown model: {model_name}") from None

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
