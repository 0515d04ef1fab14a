"""
Tests for DeviceAccessManager and ClientMediaSource
"""

import time

import pytest

from proctored_exam.errors import PermissionDenied, WrongShareSurface
from proctored_exam.proctoring.devices import ClientMediaSource, DeviceAccessManager

from conftest import LOUD_BINS, VALID_FRAME


class TestClientMediaSource:
    """Tests for the browser-reported media buffer"""

    def test_unreported_user_media_is_denied(self):
        source = ClientMediaSource()
        with pytest.raises(PermissionDenied):
            source.get_user_media()

    def test_capture_frame_returns_latest(self):
        source = ClientMediaSource()
        source.push_sample(VALID_FRAME, LOUD_BINS)
        assert source.capture_frame() == VALID_FRAME
        assert source.frequency_data() == LOUD_BINS

    def test_short_frame_treated_as_not_ready(self):
        """A blank canvas produces a very short data URI"""
        source = ClientMediaSource()
        source.push_sample("data:,")
        assert source.capture_frame() is None

    def test_stale_frame_treated_as_not_ready(self):
        source = ClientMediaSource(max_frame_age_seconds=5.0)
        source.push_sample(VALID_FRAME)
        source._frame_at = time.time() - 60
        assert source.capture_frame() is None

    def test_push_without_frame_keeps_previous_frame(self):
        source = ClientMediaSource()
        source.push_sample(VALID_FRAME)
        source.push_sample(None, [1, 2, 3])
        assert source.capture_frame() == VALID_FRAME
        assert source.frequency_data() == [1, 2, 3]

    def test_stale_frequency_data_is_dropped(self):
        source = ClientMediaSource(max_frame_age_seconds=5.0)
        source.push_sample(VALID_FRAME, LOUD_BINS)
        source._frequency_at = time.time() - 60
        source.push_sample(VALID_FRAME)

        assert source.capture_frame() == VALID_FRAME
        assert source.frequency_data() is None

    def test_clear(self):
        source = ClientMediaSource()
        source.push_sample(VALID_FRAME, LOUD_BINS)
        source.clear()
        assert source.capture_frame() is None
        assert source.frequency_data() is None


class TestDeviceAccessManager:
    """Tests for camera/mic and screen-share acquisition"""

    def test_camera_and_mic_granted(self):
        source = ClientMediaSource()
        source.report_user_media(True)
        manager = DeviceAccessManager(source)

        handles = manager.acquire_camera_and_mic()

        assert len(handles.video_tracks()) == 1
        assert len(handles.audio_tracks()) == 1
        assert manager.permissions.camera is True
        assert manager.permissions.microphone is True
        assert manager.permissions.screen is None

    def test_camera_and_mic_denied(self):
        source = ClientMediaSource()
        source.report_user_media(False)
        manager = DeviceAccessManager(source)

        with pytest.raises(PermissionDenied):
            manager.acquire_camera_and_mic()

        assert manager.permissions.camera is False
        assert manager.permissions.microphone is False
        assert manager.camera_handles is None

    def test_missing_audio_track_is_denied_and_released(self):
        source = ClientMediaSource()
        source.report_user_media(True, has_audio=False)
        manager = DeviceAccessManager(source)

        with pytest.raises(PermissionDenied) as exc:
            manager.acquire_camera_and_mic()

        assert exc.value.device == "microphone"
        assert manager.permissions.camera is True
        assert manager.permissions.microphone is False
        assert manager.camera_handles is None

    def test_whole_screen_share_granted(self):
        source = ClientMediaSource()
        source.report_display_media(True, display_surface="monitor")
        manager = DeviceAccessManager(source)

        manager.acquire_full_screen_share()

        assert manager.permissions.screen is True
        assert manager.screen_handles.active

    def test_window_share_is_rejected(self):
        """Sharing a window stops the received tracks and asks for a retry"""
        source = ClientMediaSource()
        source.report_display_media(True, display_surface="window")
        manager = DeviceAccessManager(source)

        with pytest.raises(WrongShareSurface) as exc:
            manager.acquire_full_screen_share()

        assert exc.value.surface == "window"
        assert manager.permissions.screen is False
        assert manager.screen_handles is None

    def test_wrong_surface_then_retry(self):
        source = ClientMediaSource()
        manager = DeviceAccessManager(source)

        source.report_display_media(True, display_surface="browser")
        with pytest.raises(WrongShareSurface):
            manager.acquire_full_screen_share()

        source.report_display_media(True, display_surface="monitor")
        manager.acquire_full_screen_share()
        assert manager.permissions.screen is True

    def test_release_all_is_idempotent(self):
        source = ClientMediaSource()
        source.report_user_media(True)
        source.report_display_media(True, display_surface="monitor")
        manager = DeviceAccessManager(source)
        camera = manager.acquire_camera_and_mic()
        screen = manager.acquire_full_screen_share()

        assert manager.release_all() == 2
        assert not camera.active
        assert not screen.active
        assert manager.release_all() == 0
