"""Tests for the web-mercator viewport and its weak change subscriptions."""

import gc

import pytest

from geotiff_overlay.viewport import ViewportChange, WebMercatorViewport

from tests.conftest import VIEW_LAT, VIEW_LON, VIEW_SIZE, VIEW_ZOOM


class Recorder:
    def __init__(self):
        self.changes = []

    def on_change(self, change):
        self.changes.append(change)


class TestProjection:
    def test_center_maps_to_viewport_middle(self, viewport):
        x, y = viewport.from_coordinate(VIEW_LAT, VIEW_LON)

        assert x == pytest.approx(400.0)
        assert y == pytest.approx(300.0)

    def test_north_is_up_and_east_is_right(self, viewport):
        x, y = viewport.from_coordinate(VIEW_LAT + 0.001, VIEW_LON + 0.001)

        assert x > 400.0
        assert y < 300.0

    @pytest.mark.parametrize("x,y", [(0, 0), (800, 600), (123.5, 456.25)])
    def test_screen_round_trip(self, viewport, x, y):
        lat, lon = viewport.to_coordinate(x, y)

        assert viewport.from_coordinate(lat, lon) == pytest.approx((x, y), abs=1e-6)

    def test_visible_region_contains_center(self, viewport):
        region = viewport.visible_region()

        assert region.south < VIEW_LAT < region.north
        assert region.west < VIEW_LON < region.east

    def test_latitude_is_clamped(self):
        viewport = WebMercatorViewport(0.0, 0.0, 0.0, 256, 256)

        _, y = viewport.from_coordinate(90.0, 0.0)

        assert y == pytest.approx(0.0, abs=1e-3)

    def test_invalid_size_rejected(self):
        with pytest.raises(ValueError, match="positive"):
            WebMercatorViewport(0.0, 0.0, 1.0, 0, 100)


class TestChangeNotifications:
    def test_pan_emits_region_only(self, viewport):
        recorder = Recorder()
        viewport.subscribe(recorder.on_change)

        viewport.pan_by(10, 0)

        assert recorder.changes == [ViewportChange.REGION]
        assert viewport.from_coordinate(VIEW_LAT, VIEW_LON)[0] == pytest.approx(390.0, abs=1e-6)

    def test_zoom_emits_zoom(self, viewport):
        recorder = Recorder()
        viewport.subscribe(recorder.on_change)

        viewport.set_zoom(VIEW_ZOOM + 1)
        viewport.set_zoom(VIEW_ZOOM + 1)

        assert recorder.changes == [ViewportChange.ZOOM | ViewportChange.REGION]
        assert viewport.zoom_level() == VIEW_ZOOM + 1

    def test_resize_emits_size(self, viewport):
        recorder = Recorder()
        viewport.subscribe(recorder.on_change)

        viewport.resize(1024, 768)

        assert recorder.changes == [ViewportChange.SIZE | ViewportChange.REGION]
        assert viewport.size() == (1024, 768)

    def test_cancel_stops_delivery(self, viewport):
        recorder = Recorder()
        subscription = viewport.subscribe(recorder.on_change)

        subscription.cancel()
        subscription.cancel()
        viewport.pan_by(5, 5)

        assert recorder.changes == []
        assert not subscription.active
        assert viewport.subscriber_count == 0

    def test_plain_function_listener(self, viewport):
        seen = []
        viewport.subscribe(seen.append)

        viewport.set_center(VIEW_LAT + 0.001, VIEW_LON)

        assert seen == [ViewportChange.REGION]


class TestWeakSubscriptions:
    def test_viewport_does_not_keep_listener_alive(self):
        viewport = WebMercatorViewport(VIEW_LAT, VIEW_LON, VIEW_ZOOM, *VIEW_SIZE)
        recorder = Recorder()
        subscription = viewport.subscribe(recorder.on_change)
        assert viewport.subscriber_count == 1

        del recorder
        gc.collect()

        assert not subscription.active
        assert viewport.subscriber_count == 0
        # Dead subscriptions are pruned on the next notification
        viewport.pan_by(1, 1)
        assert viewport._subscriptions == []

    def test_cancel_after_viewport_is_gone(self):
        viewport = WebMercatorViewport(VIEW_LAT, VIEW_LON, VIEW_ZOOM, *VIEW_SIZE)
        recorder = Recorder()
        subscription = viewport.subscribe(recorder.on_change)

        del viewport
        gc.collect()

        subscription.cancel()
        assert not subscription.active
