"""Tests for ROI geometry helpers."""

from __future__ import annotations

import numpy as np
import pytest

from irisx.ml.geometry import Point, Rect, RectF, crop_frame, eye_roi, face_roi_from_detection, remap_landmark


def _gradient_image(height: int = 6, width: int = 8, channels: int = 3) -> np.ndarray:
    values = np.arange(height * width * channels, dtype=np.uint16) % 250 + 1
    return values.astype(np.uint8).reshape(height, width, channels)


class TestRect:
    def test_empty_when_no_area(self) -> None:
        assert Rect().empty
        assert Rect(5, 5, 0, 10).empty
        assert Rect(5, 5, 10, -1).empty
        assert not Rect(-3, -3, 1, 1).empty

    def test_rectf_center(self) -> None:
        assert RectF(0.25, 0.5, 0.5, 0.25).center == (0.5, 0.625)


class TestFaceRoi:
    def test_expands_around_center(self) -> None:
        roi = face_roi_from_detection(RectF(0.375, 0.25, 0.25, 0.5), image_width=200, image_height=100)
        # center (100, 50), size 0.25*200*1.5 x 0.5*100*2
        assert roi == Rect(62, 0, 75, 100)

    def test_custom_scale(self) -> None:
        roi = face_roi_from_detection(RectF(0.25, 0.25, 0.5, 0.5), 100, 100, scale_x=1.0, scale_y=1.0)
        assert roi == Rect(25, 25, 50, 50)

    def test_may_extend_past_image(self) -> None:
        roi = face_roi_from_detection(RectF(0.0, 0.0, 0.5, 0.5), 100, 100)
        assert roi.x < 0
        assert roi.y < 0
        assert (roi.width, roi.height) == (75, 100)


class TestCropFrame:
    def test_inside_copies_pixels(self) -> None:
        image = _gradient_image()
        out = crop_frame(image, Rect(2, 1, 3, 4))
        assert out.shape == (4, 3, 3)
        np.testing.assert_array_equal(out, image[1:5, 2:5])

    def test_straddles_two_edges(self) -> None:
        image = _gradient_image(height=6, width=8)
        roi = Rect(-2, 3, 5, 6)  # left of the image and past the bottom edge
        out = crop_frame(image, roi)

        assert out.shape == (6, 5, 3)
        # Left two columns are padding.
        assert not out[:, :2].any()
        # Rows 3..5 of the source land in the first three rows.
        np.testing.assert_array_equal(out[:3, 2:], image[3:6, 0:3])
        # Rows below the source are padding.
        assert not out[3:].any()

    def test_straddles_top_right_corner(self) -> None:
        image = _gradient_image(height=6, width=8)
        out = crop_frame(image, Rect(6, -1, 4, 3))
        assert out.shape == (3, 4, 3)
        assert not out[0].any()
        assert not out[:, 2:].any()
        np.testing.assert_array_equal(out[1:, :2], image[0:2, 6:8])

    def test_keeps_last_row_and_column(self) -> None:
        image = _gradient_image(height=6, width=8)
        out = crop_frame(image, Rect(4, 3, 10, 10))
        np.testing.assert_array_equal(out[:3, :4], image[3:6, 4:8])

    def test_fully_outside_is_black(self) -> None:
        image = _gradient_image()
        out = crop_frame(image, Rect(100, -50, 7, 9))
        assert out.shape == (9, 7, 3)
        assert not out.any()

    def test_larger_than_image(self) -> None:
        image = _gradient_image(height=4, width=4)
        out = crop_frame(image, Rect(-1, -1, 6, 6))
        np.testing.assert_array_equal(out[1:5, 1:5], image)
        assert int(out.sum()) == int(image.sum())

    def test_keeps_channel_count(self) -> None:
        image = _gradient_image(channels=4)
        out = crop_frame(image, Rect(-1, 0, 3, 3))
        assert out.shape == (3, 3, 4)
        assert out.dtype == np.uint8

    def test_empty_roi(self) -> None:
        out = crop_frame(_gradient_image(), Rect(1, 1, 0, 5))
        assert out.size == 0


class TestEyeRoi:
    @pytest.mark.parametrize(
        ("p1", "p2", "size"),
        [
            (Point(80, 50), Point(118, 50), 38),
            (Point(62, 25), Point(62, 75), 50),
            (Point(10, 10), Point(0, 3), 10),
            (Point(-4, 7), Point(5, -9), 16),
        ],
    )
    def test_square(self, p1: Point, p2: Point, size: int) -> None:
        roi = eye_roi(p1, p2)
        assert roi.width == roi.height == size

    def test_centered_between_corners(self) -> None:
        assert eye_roi(Point(80, 50), Point(118, 50)) == Rect(80, 31, 38, 38)

    def test_same_point_is_empty(self) -> None:
        assert eye_roi(Point(3, 3), Point(3, 3)).empty


class TestRemapLandmark:
    def test_scales_and_offsets(self) -> None:
        roi = Rect(62, 0, 75, 100)
        assert remap_landmark(96.0, 96.0, roi, input_width=192, input_height=192) == Point(99, 50)

    def test_truncates(self) -> None:
        roi = Rect(10, 20, 10, 10)
        # 0.99 * 10 = 9.9 -> 9
        assert remap_landmark(0.99, 0.5, roi, 1, 1) == Point(19, 25)
