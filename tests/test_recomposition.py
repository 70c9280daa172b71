"""Tests for resampling and the recomposition schedulers."""

import threading

import cv2
import numpy as np
import pytest

from geotiff_overlay.errors import OpenFailed, RecompositionFailed
from geotiff_overlay.footprint import ScreenRect
from geotiff_overlay.raster_source import DecodedImage, PixelFormat, RasterSource
from geotiff_overlay.recomposition import (
    BackgroundScheduler,
    InlineScheduler,
    ResamplingMethod,
    compose,
    recompose,
    recompose_file,
    resample,
)


class TestResample:
    def test_nearest_upscale_repeats_pixels(self):
        pixels = np.array([[10, 20], [30, 40]], dtype=np.uint8)

        scaled = resample(pixels, (4, 4), ResamplingMethod.NEAREST)

        assert scaled.shape == (4, 4)
        assert (scaled[:2, :2] == 10).all()
        assert (scaled[2:, 2:] == 40).all()

    def test_keeps_channel_axis(self):
        pixels = np.zeros((6, 8, 3), dtype=np.uint8)

        assert resample(pixels, (4, 3)).shape == (3, 4, 3)

    def test_single_channel_axis_survives(self):
        pixels = np.zeros((6, 8, 1), dtype=np.uint8)

        assert resample(pixels, (4, 3)).shape == (3, 4, 1)

    def test_same_size_returns_copy(self):
        pixels = np.ones((3, 4), dtype=np.uint8)

        out = resample(pixels, (4, 3))

        assert out is not pixels
        assert np.array_equal(out, pixels)

    def test_zero_target_rejected(self):
        with pytest.raises(ValueError, match="at least 1x1"):
            resample(np.zeros((2, 2), dtype=np.uint8), (0, 2))

    def test_method_accepts_string_value(self):
        pixels = np.array([[0, 255]], dtype=np.uint8)

        scaled = resample(pixels, (4, 1), "nearest")

        assert set(np.unique(scaled)) == {0, 255}


class TestCompose:
    def test_output_matches_rect_and_is_read_only(self):
        decoded = DecodedImage(np.zeros((10, 20, 3), dtype=np.uint8), PixelFormat.RGB888)
        rect = ScreenRect(5.0, 5.0, 40.4, 19.6)

        image = compose(decoded, rect)

        assert image.size == (40, 20)
        assert image.rect == rect
        assert not image.has_alpha
        assert not image.pixels.flags.writeable
        with pytest.raises(ValueError):
            image.pixels[0, 0, 0] = 1

    def test_recompose_from_source(self, rgb_geotiff):
        rect = ScreenRect(0, 0, 40, 20)

        with RasterSource.open(rgb_geotiff) as source:
            image = recompose(source, rect, ResamplingMethod.NEAREST)

        assert image.pixel_format is PixelFormat.RGB888
        assert image.pixels.shape == (20, 40, 3)

    @pytest.mark.parametrize(
        "error",
        [MemoryError(), cv2.error("Insufficient memory")],
        ids=["memory-error", "cv2-error"],
    )
    def test_allocation_failure_is_an_overlay_error(self, rgb_geotiff, monkeypatch, error):
        def exhausted(pixels, target_size, method):
            raise error

        monkeypatch.setattr("geotiff_overlay.recomposition.resample", exhausted)

        with RasterSource.open(rgb_geotiff) as source:
            with pytest.raises(RecompositionFailed, match="400000x200000") as excinfo:
                recompose(source, ScreenRect(0, 0, 400000, 200000))

        assert excinfo.value.size == (400000, 200000)
        assert excinfo.value.__cause__ is error

    def test_recompose_file_opens_private_handle(self, rgb_geotiff):
        image = recompose_file(rgb_geotiff, ScreenRect(0, 0, 10, 5))

        assert image.size == (10, 5)

    def test_recompose_file_missing(self, tmp_path):
        with pytest.raises(OpenFailed):
            recompose_file(str(tmp_path / "gone.tif"), ScreenRect(0, 0, 10, 5))


def _image(width=4, height=2):
    decoded = DecodedImage(np.zeros((height, width), dtype=np.uint8), PixelFormat.GRAYSCALE8)
    return compose(decoded, ScreenRect(0, 0, width, height))


class TestInlineScheduler:
    def test_delivers_synchronously(self):
        scheduler = InlineScheduler()
        results = []

        generation = scheduler.submit(_image, lambda g, img, err: results.append((g, img, err)))

        assert generation == 1
        assert len(results) == 1
        assert results[0][0] == 1
        assert results[0][1].size == (4, 2)
        assert results[0][2] is None

    def test_job_errors_are_delivered(self):
        scheduler = InlineScheduler()
        results = []

        def failing():
            raise OpenFailed("x.tif", "simulated")

        scheduler.submit(failing, lambda g, img, err: results.append((img, err)))

        assert results[0][0] is None
        assert isinstance(results[0][1], OpenFailed)


class TestBackgroundScheduler:
    def test_result_delivered_only_on_poll(self):
        scheduler = BackgroundScheduler()
        results = []
        try:
            scheduler.submit(_image, lambda g, img, err: results.append(img))
            scheduler.wait(timeout=10)

            assert results == []
            assert scheduler.poll() == 1
            assert results[0].size == (4, 2)
        finally:
            scheduler.shutdown()

    def test_older_generation_is_discarded(self):
        scheduler = BackgroundScheduler()
        started = threading.Event()
        release = threading.Event()
        results = []

        def slow():
            started.set()
            release.wait(timeout=10)
            return _image(2, 2)

        try:
            scheduler.submit(slow, lambda g, img, err: results.append((g, img.size)))
            assert started.wait(timeout=10)
            second = scheduler.submit(lambda: _image(8, 8), lambda g, img, err: results.append((g, img.size)))
            release.set()
            scheduler.wait(timeout=10)

            scheduler.poll()

            assert results == [(second, (8, 8))]
        finally:
            scheduler.shutdown()

    def test_cancel_makes_running_job_stale(self):
        scheduler = BackgroundScheduler()
        results = []
        try:
            scheduler.submit(_image, lambda g, img, err: results.append(img))
            scheduler.wait(timeout=10)
            scheduler.cancel()

            assert scheduler.poll() == 0
            assert results == []
        finally:
            scheduler.shutdown()

    def test_job_error_delivered_on_poll(self):
        scheduler = BackgroundScheduler()
        errors = []

        def failing():
            raise OpenFailed("x.tif", "simulated")

        try:
            scheduler.submit(failing, lambda g, img, err: errors.append(err))
            scheduler.wait(timeout=10)
            scheduler.poll()

            assert isinstance(errors[0], OpenFailed)
        finally:
            scheduler.shutdown()
