"""Inference engine: a thin, buffer-owning wrapper around an ONNX session.

Each engine owns its input tensors and the outputs of its last run, so two
engines never share mutable state even when they wrap the same session.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import cv2
import numpy as np

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray
    from onnxruntime import InferenceSession

logger = logging.getLogger(__name__)

INPUT_NORM_MEAN: float = 127.5
INPUT_NORM_STD: float = 127.5


class InputNotLoadedError(RuntimeError):
    """``run()`` was called before every input tensor was loaded."""


class UnsupportedImageError(ValueError):
    """The image is not an 8-bit BGR or BGRA frame."""


# ---------------------------------------------------------------------------
# Protocol (kept for test fakes)
# ---------------------------------------------------------------------------


class InferenceEngine(Protocol):
    """Minimal contract the pipeline stages need from a model."""

    @property
    def num_inputs(self) -> int: ...

    @property
    def num_outputs(self) -> int: ...

    def load_image(self, image: NDArray[np.uint8], index: int = 0) -> None:
        """Resize, normalize and store a BGR/BGRA image in input ``index``."""
        ...

    def load_bytes(self, data: ArrayLike, index: int = 0) -> None:
        """Store already preprocessed float data in input ``index``."""
        ...

    def run(self) -> None:
        """Run the model on the loaded inputs."""
        ...

    def get_output(self, index: int = 0) -> NDArray[np.float32]:
        """Return output ``index`` flattened; valid until the next ``run()``."""
        ...

    def get_input_shape(self, index: int = 0) -> list[int]:
        """Return the shape of input ``index``."""
        ...

    def get_output_shape(self, index: int = 0) -> list[int]:
        """Return the shape of output ``index``."""
        ...


# ---------------------------------------------------------------------------
# ONNX Runtime implementation
# ---------------------------------------------------------------------------


class OnnxInferenceEngine:
    """Runs an ``onnxruntime.InferenceSession`` with per-engine buffers."""

    def __init__(self, session: InferenceSession, name: str = "model") -> None:
        self._session = session
        self._name = name
        inputs = session.get_inputs()
        outputs = session.get_outputs()

        self._input_names = [meta.name for meta in inputs]
        self._input_shapes = [_resolve_shape(meta.shape) for meta in inputs]
        self._output_names = [meta.name for meta in outputs]
        self._output_shapes = [_resolve_shape(meta.shape) for meta in outputs]

        self._inputs: list[NDArray[np.float32]] = [np.zeros(shape, dtype=np.float32) for shape in self._input_shapes]
        self._loaded = [False] * len(self._inputs)
        self._outputs: list[NDArray[np.float32]] = [np.zeros(0, dtype=np.float32) for _ in self._output_names]

    @property
    def name(self) -> str:
        return self._name

    @property
    def num_inputs(self) -> int:
        return len(self._inputs)

    @property
    def num_outputs(self) -> int:
        return len(self._outputs)

    def get_input_shape(self, index: int = 0) -> list[int]:
        if not self._is_index_valid(index, "input"):
            return []
        return list(self._input_shapes[index])

    def get_output_shape(self, index: int = 0) -> list[int]:
        if not self._is_index_valid(index, "output"):
            return []
        return list(self._output_shapes[index])

    def load_image(self, image: NDArray[np.uint8], index: int = 0) -> None:
        if not self._is_index_valid(index, "input"):
            return
        self.load_bytes(self._preprocess_image(image, index), index)

    def load_bytes(self, data: ArrayLike, index: int = 0) -> None:
        if not self._is_index_valid(index, "input"):
            return
        target = self._inputs[index]
        array = np.asarray(data, dtype=np.float32)
        if array.size != target.size:
            raise ValueError(f"Input {index} of '{self._name}' holds {target.size} values, got {array.size}")
        target[...] = array.reshape(target.shape)
        self._loaded[index] = True

    def run(self) -> None:
        """Run inference.

        Raises:
            InputNotLoadedError: If any input has not been loaded since the last run.
        """
        missing = [i for i, loaded in enumerate(self._loaded) if not loaded]
        if missing:
            raise InputNotLoadedError(f"Input(s) {missing} of '{self._name}' haven't been loaded")
        self._loaded = [False] * len(self._inputs)

        feed = dict(zip(self._input_names, self._inputs, strict=True))
        results = self._session.run(self._output_names, feed)

        outputs: list[NDArray[np.float32]] = []
        for result in results:
            array = np.array(result, dtype=np.float32).reshape(-1)
            array.flags.writeable = False
            outputs.append(array)
        self._outputs = outputs

    def get_output(self, index: int = 0) -> NDArray[np.float32]:
        if not self._is_index_valid(index, "output"):
            return np.zeros(0, dtype=np.float32)
        return self._outputs[index]

    # -- Internal -----------------------------------------------------------

    def _is_index_valid(self, index: int, kind: str) -> bool:
        size = len(self._inputs) if kind == "input" else len(self._outputs)
        if index < 0 or index >= size:
            logger.warning("%s index %d of '%s' is out of range (%d)", kind.capitalize(), index, self._name, size)
            return False
        return True

    def _preprocess_image(self, image: NDArray[np.uint8], index: int) -> NDArray[np.float32]:
        rgb = _convert_to_rgb(image)
        shape = self._input_shapes[index]
        height, width = input_hw(shape)
        channels_first = _is_channels_first(shape)

        resized = cv2.resize(rgb, (width, height))
        tensor = (resized.astype(np.float32) - INPUT_NORM_MEAN) / INPUT_NORM_STD
        if channels_first:
            tensor = tensor.transpose(2, 0, 1)
        return tensor


def _convert_to_rgb(image: NDArray[np.uint8]) -> NDArray[np.uint8]:
    if image.dtype != np.uint8 or image.ndim != 3 or image.shape[0] == 0 or image.shape[1] == 0:
        raise UnsupportedImageError(f"Image of dtype {image.dtype} and shape {image.shape} not supported")
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
    raise UnsupportedImageError(f"Image with {image.shape[2]} channels not supported")


def _resolve_shape(shape: list[int | str | None]) -> list[int]:
    # Dynamic dimensions (batch) come back as strings or None.
    return [dim if isinstance(dim, int) and dim > 0 else 1 for dim in shape]


def input_hw(shape: list[int]) -> tuple[int, int]:
    """Height and width of an image input tensor, NHWC or NCHW."""
    if _is_channels_first(shape):
        return shape[2], shape[3]
    return shape[1], shape[2]


def _is_channels_first(shape: list[int]) -> bool:
    return len(shape) == 4 and shape[1] in (3, 4) and shape[3] not in (3, 4)
