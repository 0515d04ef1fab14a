"""
proctoring/devices.py

카메라/마이크, 전체 화면 공유 스트림의 확보와 해제.

- MediaTrack / MediaHandles : 확보한 스트림 핸들 (stop()으로 해제)
- ClientMediaSource         : 브라우저가 보고한 권한 결과 + 최근 프레임/오디오 버퍼
- DeviceAccessManager       : 권한 상태(PermissionState)의 유일한 변경 주체
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from proctored_exam.errors import PermissionDenied, WrongShareSurface
from proctored_exam.models.session_state import PermissionState

logger = logging.getLogger(__name__)

WHOLE_SCREEN_SURFACE = "monitor"
_MIN_FRAME_LENGTH = 50  # 이보다 짧은 data URI는 빈 캔버스로 본다


@dataclass
class MediaTrack:
    kind: str                       # "video" | "audio"
    label: str = ""
    settings: Dict[str, Any] = field(default_factory=dict)
    ended: bool = False

    def stop(self) -> None:
        self.ended = True


@dataclass
class MediaHandles:
    tracks: List[MediaTrack] = field(default_factory=list)

    def video_tracks(self) -> List[MediaTrack]:
        return [t for t in self.tracks if t.kind == "video"]

    def audio_tracks(self) -> List[MediaTrack]:
        return [t for t in self.tracks if t.kind == "audio"]

    @property
    def active(self) -> bool:
        return any(not t.ended for t in self.tracks)

    def stop(self) -> None:
        for track in self.tracks:
            track.stop()


class ClientMediaSource:
    """
    브라우저 쪽 getUserMedia/getDisplayMedia 결과를 서버에서 대신 보관하는 소스.

    브라우저는 권한 결과를 report_*()로, 캡처한 프레임과 주파수 데이터를
    push_sample()로 보낸다. 샘플러는 capture_frame()/frequency_data()로
    가장 최근 값을 읽는다. 오래된 프레임은 준비되지 않은 것으로 취급한다.
    """

    def __init__(self, max_frame_age_seconds: float = 15.0):
        self._lock = threading.Lock()
        self.max_frame_age_seconds = max_frame_age_seconds
        self._user_media: Optional[Dict[str, Any]] = None
        self._display_media: Optional[Dict[str, Any]] = None
        self._frame: Optional[str] = None
        self._frame_at: float = 0.0
        self._frequency_data: Optional[List[int]] = None
        self._frequency_at: float = 0.0

    # ── 권한 보고 ────────────────────────────────────────────────────────────

    def report_user_media(self, granted: bool, has_video: bool = True, has_audio: bool = True, label: str = "") -> None:
        with self._lock:
            self._user_media = {"granted": granted, "video": has_video, "audio": has_audio, "label": label}

    def report_display_media(self, granted: bool, display_surface: str = "") -> None:
        with self._lock:
            self._display_media = {"granted": granted, "display_surface": display_surface}

    def get_user_media(self) -> MediaHandles:
        with self._lock:
            report = self._user_media
        if not report or not report["granted"]:
            raise PermissionDenied("camera", "카메라와 마이크 권한이 모두 필요합니다.")
        tracks = []
        if report["video"]:
            tracks.append(MediaTrack(kind="video", label=report["label"]))
        if report["audio"]:
            tracks.append(MediaTrack(kind="audio", label=report["label"]))
        return MediaHandles(tracks=tracks)

    def get_display_media(self) -> MediaHandles:
        with self._lock:
            report = self._display_media
        if not report or not report["granted"]:
            raise PermissionDenied("screen", "전체 화면 공유가 필요합니다.")
        return MediaHandles(
            tracks=[MediaTrack(kind="video", settings={"display_surface": report["display_surface"]})]
        )

    # ── 샘플 버퍼 ────────────────────────────────────────────────────────────

    def push_sample(self, frame: Optional[str], frequency_data: Optional[Sequence[int]] = None) -> None:
        with self._lock:
            if frame is not None:
                self._frame = frame
                self._frame_at = time.time()
            if frequency_data is not None:
                self._frequency_data = list(frequency_data)
                self._frequency_at = time.time()

    def capture_frame(self) -> Optional[str]:
        """최근 프레임 (data URI 또는 base64). 없거나 오래됐거나 비정상적으로 짧으면 None."""
        with self._lock:
            frame, frame_at = self._frame, self._frame_at
        if not frame or len(frame) < _MIN_FRAME_LENGTH:
            return None
        if time.time() - frame_at > self.max_frame_age_seconds:
            return None
        return frame

    def frequency_data(self) -> Optional[List[int]]:
        """최근 주파수 빈. 없거나 프레임과 같은 기준으로 오래됐으면 None (마이크 비활성)."""
        with self._lock:
            data, data_at = self._frequency_data, self._frequency_at
        if data is None or time.time() - data_at > self.max_frame_age_seconds:
            return None
        return list(data)

    def clear(self) -> None:
        with self._lock:
            self._frame = None
            self._frame_at = 0.0
            self._frequency_data = None
            self._frequency_at = 0.0


class DeviceAccessManager:
    """
    카메라+마이크, 전체 화면 공유 확보/해제.
    세 가지 권한이 모두 True가 되어야 시험을 시작할 수 있다.
    """

    def __init__(self, source: ClientMediaSource):
        self.source = source
        self.permissions = PermissionState()
        self._camera: Optional[MediaHandles] = None
        self._screen: Optional[MediaHandles] = None

    @property
    def camera_handles(self) -> Optional[MediaHandles]:
        return self._camera

    @property
    def screen_handles(self) -> Optional[MediaHandles]:
        return self._screen

    def acquire_camera_and_mic(self) -> MediaHandles:
        self._release_camera()
        try:
            handles = self.source.get_user_media()
        except PermissionDenied:
            self.permissions.camera = False
            self.permissions.microphone = False
            logger.warning("카메라/마이크 권한 거부")
            raise

        has_video = bool(handles.video_tracks())
        has_audio = bool(handles.audio_tracks())
        self.permissions.camera = has_video
        self.permissions.microphone = has_audio
        if not (has_video and has_audio):
            handles.stop()
            missing = "camera" if not has_video else "microphone"
            logger.warning(f"필수 트랙 없음: {missing}")
            raise PermissionDenied(missing, "카메라와 마이크 권한이 모두 필요합니다.")

        self._camera = handles
        logger.info("카메라/마이크 확보 완료")
        return handles

    def acquire_full_screen_share(self) -> MediaHandles:
        self._release_screen()
        try:
            handles = self.source.get_display_media()
        except PermissionDenied:
            self.permissions.screen = False
            logger.warning("화면 공유 권한 거부")
            raise

        tracks = handles.video_tracks()
        surface = tracks[0].settings.get("display_surface", "") if tracks else ""
        if surface != WHOLE_SCREEN_SURFACE:
            # 창/탭 공유: 받은 트랙을 바로 정리하고 재시도를 요청
            handles.stop()
            self.permissions.screen = False
            logger.warning(f"전체 화면이 아닌 공유 거부: surface={surface!r}")
            raise WrongShareSurface(surface)

        self._screen = handles
        self.permissions.screen = True
        logger.info("전체 화면 공유 확보 완료")
        return handles

    def release_all(self) -> int:
        """확보한 스트림을 모두 해제. 해제한 핸들 수를 반환 (이미 해제됐으면 0)."""
        released = self._release_camera() + self._release_screen()
        self.source.clear()
        if released:
            logger.info(f"미디어 스트림 {released}개 해제")
        return released

    def _release_camera(self) -> int:
        handles, self._camera = self._camera, None
        if handles is None:
            return 0
        handles.stop()
        return 1

    def _release_screen(self) -> int:
        handles, self._screen = self._screen, None
        if handles is None:
            return 0
        handles.stop()
        return 1
