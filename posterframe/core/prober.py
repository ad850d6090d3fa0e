"""영상 속성 조회기.

ffprobe 를 좁은 범위의 질의 여러 개로 나누어 실행한다.
하나의 질의가 실패해도 나머지 정보로 프로파일을 만들 수 있다.

질의 항목:
    - **길이**: ``format=duration``
    - **코덱**: 첫 번째 비디오 스트림 ``codec_name`` / ``profile``
    - **색 정보**: color_space, color_transfer, color_primaries, pix_fmt, 비트 깊이
    - **부가 데이터**: Dolby Vision 구성 레코드, HDR10+ 동적 메타데이터

반환:
    :class:`~posterframe.models.media.MediaProfile` 데이터클래스
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from posterframe.ffmpeg.executor import ProcessRunner
from posterframe.models.media import HdrClass, MediaProfile

logger = logging.getLogger(__name__)

DOVI_SIDE_DATA = "DOVI configuration record"
HDR10_PLUS_SIDE_DATA = "HDR Dynamic Metadata SMPTE2094-40 (HDR10+)"

_PIX_FMT_DEPTH_RE = re.compile(r"p(\d{2})(?:le|be)?$")
_SDR_TRANSFERS = frozenset(
    {
        "bt709",
        "bt601",
        "smpte170m",
        "smpte240m",
        "bt470m",
        "bt470bg",
        "iec61966-2-1",
        "bt2020-10",
        "bt2020-12",
    }
)
# 부가 데이터 질의가 의미 있는 코덱 (Dolby Vision / HDR10+ 를 담을 수 있는 코덱)
_SIDE_DATA_CODECS = frozenset({"hevc", "av1", "h264"})


class ProbeError(Exception):
    """조회 대상 파일이 없어 프로파일을 만들 수 없을 때 발생하는 예외."""


def _parse_float(value: Any) -> float | None:
    """ffprobe 숫자 문자열을 float로 변환. 실패 시 None."""
    if value is None or value == "N/A":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if result > 0 else None


def _parse_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def detect_bit_depth(bits_per_raw_sample: Any, pixel_format: str, profile: str) -> int:
    """비트 깊이 추정.

    ``bits_per_raw_sample`` → 픽셀 포맷 접미사(``p10le``) → 코덱 프로파일(``Main 10``)
    순서로 확인하고, 모두 없으면 8비트로 본다.
    """
    depth = _parse_int(bits_per_raw_sample)
    if depth:
        return depth
    match = _PIX_FMT_DEPTH_RE.search(pixel_format or "")
    if match:
        return int(match.group(1))
    profile_lower = (profile or "").lower().replace(" ", "")
    if "main10" in profile_lower or "high10" in profile_lower or profile_lower.endswith("10"):
        return 10
    return 8


def _find_side_data(entries: list[dict[str, Any]], side_data_type: str) -> dict[str, Any] | None:
    for entry in entries:
        if isinstance(entry, dict) and entry.get("side_data_type") == side_data_type:
            return entry
    return None


def classify_dolby_vision(record: dict[str, Any], has_hdr10_plus: bool) -> HdrClass:
    """Dolby Vision 구성 레코드로 세부 분류를 결정한다.

    Args:
        record: ``DOVI configuration record`` 부가 데이터
        has_hdr10_plus: HDR10+ 동적 메타데이터 존재 여부

    Returns:
        Dolby Vision 계열 HdrClass
    """
    profile = _parse_int(record.get("dv_profile"))
    compat_id = _parse_int(record.get("dv_bl_signal_compatibility_id"))
    el_present = bool(_parse_int(record.get("el_present_flag")))

    if el_present:
        return HdrClass.DOVI_WITH_EL_HDR10_PLUS if has_hdr10_plus else HdrClass.DOVI_WITH_EL
    if compat_id == 0:
        # 프로파일 5 / 10.0: HDR10 베이스 레이어가 없는 단독 Dolby Vision
        return HdrClass.DOVI if profile in (5, 10) else HdrClass.DOVI_INVALID
    if compat_id == 1:
        return HdrClass.DOVI_WITH_HDR10_PLUS if has_hdr10_plus else HdrClass.DOVI_WITH_HDR10
    if compat_id == 2:
        return HdrClass.DOVI_WITH_SDR
    if compat_id == 4:
        return HdrClass.DOVI_WITH_HLG
    return HdrClass.DOVI_INVALID


def classify_hdr(
    color_transfer: str,
    color_primaries: str,
    side_data: list[dict[str, Any]] | None = None,
) -> HdrClass:
    """색 정보와 부가 데이터로 HDR 분류를 결정한다.

    Args:
        color_transfer: 전달 특성
        color_primaries: 색 영역
        side_data: 스트림·프레임 부가 데이터 목록

    Returns:
        HdrClass. 판단할 정보가 없으면 UNKNOWN.
    """
    entries = side_data or []
    has_hdr10_plus = _find_side_data(entries, HDR10_PLUS_SIDE_DATA) is not None
    dovi = _find_side_data(entries, DOVI_SIDE_DATA)
    if dovi is not None:
        return classify_dolby_vision(dovi, has_hdr10_plus)

    transfer = (color_transfer or "").lower()
    primaries = (color_primaries or "").lower()

    if transfer == "smpte2084":
        return HdrClass.HDR10_PLUS if has_hdr10_plus else HdrClass.HDR10
    if transfer == "arib-std-b67":
        return HdrClass.HLG
    if transfer in _SDR_TRANSFERS or primaries == "bt709":
        return HdrClass.SDR
    return HdrClass.UNKNOWN


def build_ffprobe_command(
    video_path: Path,
    entries: list[str],
    ffprobe_path: str = "ffprobe",
) -> list[str]:
    """JSON 출력 ffprobe 명령 생성."""
    return [ffprobe_path, "-v", "error", *entries, "-of", "json", str(video_path)]


class Prober:
    """ffprobe 기반 영상 속성 조회기."""

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        ffprobe_path: str = "ffprobe",
        timeout: float = 30.0,
    ) -> None:
        """
        초기화.

        Args:
            runner: 공유 ProcessRunner
            ffprobe_path: ffprobe 실행 파일 경로
            timeout: 질의별 타임아웃 (초)
        """
        self.runner = runner or ProcessRunner()
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    async def probe(self, video_path: Path, duration_hint: float | None = None) -> MediaProfile:
        """영상 프로파일을 조회한다.

        질의 실패는 해당 필드만 기본값으로 남기고 계속 진행한다.

        Args:
            video_path: 영상 파일 경로
            duration_hint: 호출자가 이미 알고 있는 길이 (초). 있으면 길이 질의 생략

        Returns:
            MediaProfile. 길이를 얻지 못하면 ``duration_seconds`` 는 None.

        Raises:
            ProbeError: 파일이 존재하지 않음
        """
        if not video_path.is_file():
            raise ProbeError(f"Video file not found: {video_path}")

        duration = duration_hint if duration_hint and duration_hint > 0 else None
        if duration is None:
            duration = await self.probe_duration(video_path)

        codec, codec_profile = await self.probe_codec(video_path)
        color = await self.probe_color(video_path)

        color_transfer = str(color.get("color_transfer") or "")
        color_primaries = str(color.get("color_primaries") or "")
        pixel_format = str(color.get("pix_fmt") or "")

        side_data: list[dict[str, Any]] = []
        if codec in _SIDE_DATA_CODECS:
            side_data = await self.probe_side_data(video_path)

        hdr_class = classify_hdr(color_transfer, color_primaries, side_data)

        profile = MediaProfile(
            path=video_path,
            duration_seconds=duration,
            video_codec=codec,
            color_space=str(color.get("color_space") or ""),
            color_transfer=color_transfer,
            color_primaries=color_primaries,
            pixel_format=pixel_format,
            bit_depth=detect_bit_depth(
                color.get("bits_per_raw_sample"), pixel_format, codec_profile
            ),
            hdr_class=hdr_class,
        )
        logger.debug(
            "Probed %s: codec=%s duration=%s hdr=%s depth=%d",
            video_path.name,
            profile.video_codec,
            profile.duration_seconds,
            profile.hdr_class.value,
            profile.bit_depth,
        )
        return profile

    async def probe_duration(self, video_path: Path) -> float | None:
        """컨테이너 길이 (초). 실패 시 None."""
        data = await self._query(video_path, ["-show_entries", "format=duration"])
        if data is None:
            return None
        return _parse_float(data.get("format", {}).get("duration"))

    async def probe_codec(self, video_path: Path) -> tuple[str, str]:
        """첫 번째 비디오 스트림의 (코덱, 프로파일). 실패 시 ``("unknown", "")``."""
        data = await self._query(
            video_path,
            ["-select_streams", "v:0", "-show_entries", "stream=codec_name,profile"],
        )
        stream = self._first_stream(data)
        if not stream:
            return "unknown", ""
        codec = str(stream.get("codec_name") or "unknown").lower()
        return codec, str(stream.get("profile") or "")

    async def probe_color(self, video_path: Path) -> dict[str, Any]:
        """색 공간·전달 특성·픽셀 포맷. 실패 시 빈 dict."""
        data = await self._query(
            video_path,
            [
                "-select_streams",
                "v:0",
                "-show_entries",
                "stream=color_space,color_transfer,color_primaries,pix_fmt,bits_per_raw_sample",
            ],
        )
        return self._first_stream(data) or {}

    async def probe_side_data(self, video_path: Path) -> list[dict[str, Any]]:
        """스트림과 첫 프레임의 부가 데이터. 실패 시 빈 리스트."""
        data = await self._query(
            video_path,
            [
                "-select_streams",
                "v:0",
                "-read_intervals",
                "%+#1",
                "-show_entries",
                "stream_side_data_list:frame_side_data_list",
            ],
        )
        if data is None:
            return []

        entries: list[dict[str, Any]] = []
        stream = self._first_stream(data)
        if stream:
            entries.extend(stream.get("side_data_list", []))
        frames = data.get("frames", [])
        if frames and isinstance(frames[0], dict):
            entries.extend(frames[0].get("side_data_list", []))
        return [entry for entry in entries if isinstance(entry, dict)]

    async def _query(self, video_path: Path, entries: list[str]) -> dict[str, Any] | None:
        """ffprobe 질의 1건 실행. 실패하면 로그를 남기고 None."""
        command = build_ffprobe_command(video_path, entries, self.ffprobe_path)
        result = await self.runner.run(command[0], command[1:], timeout=self.timeout)
        if not result.ok:
            logger.warning(
                "ffprobe query %s failed for %s (code %d)",
                entries[-1],
                video_path.name,
                result.returncode,
            )
            return None
        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            logger.warning("Invalid ffprobe JSON for %s: %s", video_path.name, e)
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _first_stream(data: dict[str, Any] | None) -> dict[str, Any] | None:
        if not data:
            return None
        streams = data.get("streams", [])
        if streams and isinstance(streams[0], dict):
            return streams[0]
        return None
