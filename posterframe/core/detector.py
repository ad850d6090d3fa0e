"""검은 화면 구간 감지기.

영상 전체를 분석하지 않고 타임라인의 다섯 지점에서 최대 30초 구간을 샘플링하여
ffmpeg ``blackdetect`` 필터를 실행한다. 샘플 구간은 서로 독립이므로 동시에 실행할 수 있다.

처리 순서:
    1. (경로, 크기, 수정 시각) 캐시 확인
    2. 2분 미만 영상은 분석하지 않음 (캐시하지 않음)
    3. 5%, 25%, 50%, 75%, 90% 지점 샘플 구간 계산
    4. 320x240 축소 후 blackdetect 실행, stderr 에서 구간 파싱 (구간 시작 시각만큼 보정)
    5. 결과 병합 후 캐시 저장
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from posterframe.core.cache import BlackIntervalCache, CacheKey
from posterframe.ffmpeg.executor import ProcessRunner, thread_args
from posterframe.models.media import BlackInterval

logger = logging.getLogger(__name__)

SAMPLE_POSITIONS = (0.05, 0.25, 0.5, 0.75, 0.9)
MAX_WINDOW_SECONDS = 30.0
MIN_WINDOW_SECONDS = 5.0
MIN_DETECT_DURATION = 120.0
ANALYSIS_SCALE = "320:240"

_BLACKDETECT_PATTERN = re.compile(
    r"black_start:\s*(\d+(?:\.\d+)?)\s+"
    r"black_end:\s*(\d+(?:\.\d+)?)\s+"
    r"black_duration:\s*(\d+(?:\.\d+)?)"
)


@dataclass(frozen=True)
class SampleWindow:
    """blackdetect 샘플 구간.

    Attributes:
        start: 시작 시각 (초)
        duration: 길이 (초)
    """

    start: float
    duration: float

    @property
    def end(self) -> float:
        """종료 시각 (초)."""
        return self.start + self.duration


@dataclass(frozen=True)
class BlackDetectSettings:
    """검은 화면 감지 설정.

    Attributes:
        enabled: False면 감지를 건너뛰고 빈 목록 반환
        pixel_threshold: 검은 픽셀 휘도 기준 (``pix_th``)
        min_duration: 검은 구간 최소 길이 (초, ``d``)
        parallel: 샘플 구간 동시 실행 여부
        window_timeout: 샘플 구간별 타임아웃 (초)
    """

    enabled: bool = True
    pixel_threshold: float = 0.1
    min_duration: float = 0.1
    parallel: bool = True
    window_timeout: float = 120.0


def compute_sample_windows(
    total_duration: float,
    positions: tuple[float, ...] = SAMPLE_POSITIONS,
    max_window: float = MAX_WINDOW_SECONDS,
    min_window: float = MIN_WINDOW_SECONDS,
) -> list[SampleWindow]:
    """상대 위치별 샘플 구간을 계산한다.

    각 구간은 최대 ``max_window`` 초이며 남은 길이로 잘린다.
    ``min_window`` 초 이하로 잘린 구간은 버린다.

    Args:
        total_duration: 영상 길이 (초)
        positions: 0~1 상대 위치
        max_window: 구간 최대 길이 (초)
        min_window: 구간 최소 길이 (초)

    Returns:
        샘플 구간 목록 (위치 순서)
    """
    if total_duration <= 0:
        return []

    windows: list[SampleWindow] = []
    for position in positions:
        start = total_duration * position
        duration = min(max_window, total_duration - start)
        if duration <= min_window:
            continue
        windows.append(SampleWindow(start=start, duration=duration))
    return windows


def parse_blackdetect_output(
    ffmpeg_output: str,
    offset: float = 0.0,
    total_duration: float | None = None,
) -> list[BlackInterval]:
    """ffmpeg stderr 에서 blackdetect 로그를 파싱한다.

    Args:
        ffmpeg_output: ffmpeg stderr 출력
        offset: 샘플 구간 시작 시각 (``-ss`` 값). 모든 시각에 더해진다
        total_duration: 영상 길이. 지정하면 구간을 [0, total_duration] 로 제한

    Returns:
        검은 화면 구간 리스트. 시작이 끝보다 늦은 항목은 버린다.
    """
    intervals: list[BlackInterval] = []
    for match in _BLACKDETECT_PATTERN.finditer(ffmpeg_output):
        start = max(0.0, float(match.group(1)) + offset)
        end = float(match.group(2)) + offset
        if total_duration is not None:
            end = min(end, total_duration)
        if end <= start:
            continue
        intervals.append(BlackInterval(start=start, end=end, duration=end - start))
    return intervals


def build_blackdetect_command(
    video_path: Path,
    window: SampleWindow,
    settings: BlackDetectSettings | None = None,
    ffmpeg_path: str = "ffmpeg",
    threads: int | None = None,
) -> list[str]:
    """샘플 구간 blackdetect 분석 명령 생성.

    blackdetect 결과는 info 레벨로 stderr 에 출력되므로 로그 레벨을 낮추지 않는다.
    """
    opts = settings or BlackDetectSettings()
    video_filter = (
        f"scale={ANALYSIS_SCALE},"
        f"blackdetect=d={opts.min_duration:g}:pix_th={opts.pixel_threshold:g}"
    )
    return [
        ffmpeg_path,
        "-hide_banner",
        "-nostats",
        "-ss",
        f"{window.start:.3f}",
        "-t",
        f"{window.duration:.3f}",
        "-i",
        str(video_path),
        "-vf",
        video_filter,
        "-an",
        *thread_args(threads),
        "-f",
        "null",
        "-",
    ]


class BlackSceneDetector:
    """샘플링 기반 검은 화면 구간 감지기."""

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        cache: BlackIntervalCache | None = None,
        settings: BlackDetectSettings | None = None,
        ffmpeg_path: str = "ffmpeg",
        threads: int | None = None,
    ) -> None:
        """
        초기화.

        Args:
            runner: 공유 ProcessRunner
            cache: 공유 구간 캐시 (기본: 새 캐시)
            settings: 감지 설정
            ffmpeg_path: ffmpeg 실행 파일 경로
            threads: ffmpeg ``-threads`` 값 (기본: 코어의 1/4)
        """
        self.runner = runner or ProcessRunner()
        self.cache = cache if cache is not None else BlackIntervalCache()
        self.settings = settings or BlackDetectSettings()
        self.ffmpeg_path = ffmpeg_path
        self.threads = threads

    async def detect(self, video_path: Path, total_duration: float | None) -> list[BlackInterval]:
        """
        검은 화면 구간을 감지한다.

        Args:
            video_path: 영상 파일 경로
            total_duration: 영상 길이 (초)

        Returns:
            시작 시각 순으로 정렬된 구간 목록. 샘플 경계에서 겹칠 수 있다.
        """
        if not self.settings.enabled:
            return []

        key = CacheKey.from_path(video_path)
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Black interval cache hit: %s", video_path.name)
                return list(cached)

        if not total_duration or total_duration < MIN_DETECT_DURATION:
            logger.debug("Skipping black detection for short video: %s", video_path.name)
            return []

        windows = compute_sample_windows(total_duration)
        if self.settings.parallel:
            results = await asyncio.gather(
                *(self._detect_window(video_path, window, total_duration) for window in windows)
            )
        else:
            results = [
                await self._detect_window(video_path, window, total_duration)
                for window in windows
            ]

        intervals = sorted(
            (interval for found in results if found for interval in found),
            key=lambda interval: interval.start,
        )
        logger.info(
            "Detected %d black intervals in %s (%d windows)",
            len(intervals),
            video_path.name,
            len(windows),
        )

        failed = sum(1 for found in results if found is None)
        if key is not None and failed < len(windows):
            self.cache.put(key, intervals)
        return intervals

    async def _detect_window(
        self,
        video_path: Path,
        window: SampleWindow,
        total_duration: float,
    ) -> list[BlackInterval] | None:
        """샘플 구간 1개 분석. 실패하면 None (구간 없음으로 취급)."""
        command = build_blackdetect_command(
            video_path, window, self.settings, self.ffmpeg_path, self.threads
        )
        result = await self.runner.run(
            command[0], command[1:], timeout=self.settings.window_timeout
        )
        if not result.ok:
            logger.warning(
                "blackdetect failed for %s at %.1fs (code %d)",
                video_path.name,
                window.start,
                result.returncode,
            )
            return None
        return parse_blackdetect_output(result.stderr, window.start, total_duration)
