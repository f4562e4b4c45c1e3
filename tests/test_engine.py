"""Tests for the ONNX Runtime inference engine wrapper."""

from __future__ import annotations

import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np
import pytest

from irisx.ml.engine import (
    InputNotLoadedError,
    OnnxInferenceEngine,
    UnsupportedImageError,
    input_hw,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_session(
    input_shape: list[object] | None = None,
    output_shapes: list[list[int]] | None = None,
) -> MagicMock:
    input_shape = input_shape if input_shape is not None else [1, 4, 4, 3]
    output_shapes = output_shapes if output_shapes is not None else [[1, 6], [1, 2]]

    session = MagicMock()
    session.get_inputs.return_value = [SimpleNamespace(name="input", shape=input_shape)]
    session.get_outputs.return_value = [
        SimpleNamespace(name=f"output_{i}", shape=shape) for i, shape in enumerate(output_shapes)
    ]
    session.run.return_value = [
        np.arange(np.prod(shape), dtype=np.float32).reshape(shape) for shape in output_shapes
    ]
    return session


def _fed_tensor(session: MagicMock) -> np.ndarray:
    _output_names, feed = session.run.call_args.args
    return feed["input"]


def _bgr_image(b: int, g: int, r: int, size: int = 8) -> np.ndarray:
    image = np.zeros((size, size, 3), dtype=np.uint8)
    image[..., 0] = b
    image[..., 1] = g
    image[..., 2] = r
    return image


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestMetadata:
    def test_shapes_and_counts(self) -> None:
        engine = OnnxInferenceEngine(_make_session(), name="detector")
        assert engine.num_inputs == 1
        assert engine.num_outputs == 2
        assert engine.get_input_shape() == [1, 4, 4, 3]
        assert engine.get_output_shape(1) == [1, 2]

    def test_dynamic_dims_resolve_to_one(self) -> None:
        engine = OnnxInferenceEngine(_make_session(input_shape=["batch", 64, 64, 3]))
        assert engine.get_input_shape() == [1, 64, 64, 3]

    def test_invalid_index_returns_empty(self, caplog: pytest.LogCaptureFixture) -> None:
        engine = OnnxInferenceEngine(_make_session(), name="detector")
        with caplog.at_level(logging.WARNING, logger="irisx.ml.engine"):
            assert engine.get_input_shape(3) == []
            assert engine.get_output(-1).size == 0
        assert "out of range" in caplog.text


class TestLoadImage:
    def test_white_image_normalizes_to_one(self) -> None:
        session = _make_session()
        engine = OnnxInferenceEngine(session)

        engine.load_image(_bgr_image(255, 255, 255))
        engine.run()

        tensor = _fed_tensor(session)
        assert tensor.shape == (1, 4, 4, 3)
        assert tensor.dtype == np.float32
        np.testing.assert_allclose(tensor, 1.0)

    def test_converts_bgr_to_rgb(self) -> None:
        session = _make_session()
        engine = OnnxInferenceEngine(session)

        engine.load_image(_bgr_image(255, 0, 0))
        engine.run()

        tensor = _fed_tensor(session)
        np.testing.assert_allclose(tensor[..., 0], -1.0)
        np.testing.assert_allclose(tensor[..., 2], 1.0)

    def test_accepts_bgra(self) -> None:
        session = _make_session()
        engine = OnnxInferenceEngine(session)
        image = np.zeros((5, 7, 4), dtype=np.uint8)
        image[..., 2] = 255

        engine.load_image(image)
        engine.run()

        tensor = _fed_tensor(session)
        np.testing.assert_allclose(tensor[..., 0], 1.0)
        np.testing.assert_allclose(tensor[..., 1], -1.0)

    def test_channels_first_input(self) -> None:
        session = _make_session(input_shape=[1, 3, 4, 6])
        engine = OnnxInferenceEngine(session)

        engine.load_image(_bgr_image(0, 0, 255))
        engine.run()

        tensor = _fed_tensor(session)
        assert tensor.shape == (1, 3, 4, 6)
        np.testing.assert_allclose(tensor[0, 0], 1.0)
        np.testing.assert_allclose(tensor[0, 2], -1.0)

    def test_grayscale_rejected(self) -> None:
        engine = OnnxInferenceEngine(_make_session())
        with pytest.raises(UnsupportedImageError):
            engine.load_image(np.zeros((4, 4), dtype=np.uint8))

    def test_float_image_rejected(self) -> None:
        engine = OnnxInferenceEngine(_make_session())
        with pytest.raises(UnsupportedImageError):
            engine.load_image(np.zeros((4, 4, 3), dtype=np.float32))  # type: ignore[arg-type]

    def test_two_channel_image_rejected(self) -> None:
        engine = OnnxInferenceEngine(_make_session())
        with pytest.raises(UnsupportedImageError, match="2 channels"):
            engine.load_image(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_load_bytes_size_checked(self) -> None:
        engine = OnnxInferenceEngine(_make_session())
        with pytest.raises(ValueError, match="holds 48 values"):
            engine.load_bytes(np.zeros(10, dtype=np.float32))


class TestRun:
    def test_run_without_input_raises(self) -> None:
        engine = OnnxInferenceEngine(_make_session(), name="landmarks")
        with pytest.raises(InputNotLoadedError, match="landmarks"):
            engine.run()

    def test_inputs_must_be_reloaded_between_runs(self) -> None:
        engine = OnnxInferenceEngine(_make_session())
        engine.load_bytes(np.zeros(48, dtype=np.float32))
        engine.run()
        with pytest.raises(InputNotLoadedError):
            engine.run()

    def test_outputs_flat_and_read_only(self) -> None:
        engine = OnnxInferenceEngine(_make_session())
        engine.load_bytes(np.zeros(48, dtype=np.float32))
        engine.run()

        output = engine.get_output(0)
        np.testing.assert_array_equal(output, np.arange(6, dtype=np.float32))
        assert not output.flags.writeable
        with pytest.raises(ValueError):
            output[0] = 42.0

    def test_requests_outputs_by_name(self) -> None:
        session = _make_session()
        engine = OnnxInferenceEngine(session)
        engine.load_bytes(np.ones(48, dtype=np.float32))
        engine.run()

        output_names, _feed = session.run.call_args.args
        assert output_names == ["output_0", "output_1"]


class TestInputHw:
    def test_nhwc(self) -> None:
        assert input_hw([1, 192, 128, 3]) == (192, 128)

    def test_nchw(self) -> None:
        assert input_hw([1, 3, 64, 32]) == (64, 32)
