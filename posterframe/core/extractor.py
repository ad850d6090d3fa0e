"""포스터 프레임 추출기.

타임스탬프 선택 → 디코딩 경로 결정 → 필터 체인 구성 → ffmpeg 실행 → 출력 검증을
재시도 한도 안에서 반복한다.

- 하드웨어 경로가 실패하면 코덱을 실패 집합에 기록하고 같은 시도 슬롯을
  소프트웨어로 즉시 다시 실행한다 (재시도 횟수를 소모하지 않음).
- 시도마다 새 출력 경로를 사용하며, 실패한 시도의 파일은 즉시 삭제한다.
- 추출된 프레임의 평균 휘도가 기준 미만이면 다른 시점으로 다시 시도한다.
  모든 시도가 밝기 기준에서 떨어지면 그중 가장 밝은 프레임을 돌려준다.
- 재시도 한도를 모두 쓰면 예외 없이 None 을 반환한다.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from posterframe.core.quality import DEFAULT_MIN_BRIGHTNESS, is_bright_enough, measure_brightness
from posterframe.ffmpeg.executor import ProcessRunner, ProcessResult, thread_args
from posterframe.ffmpeg.filters import (
    NO_FILTER_CAPABILITIES,
    FilterCapabilities,
    FilterCapabilityDetector,
)
from posterframe.ffmpeg.hardware import HardwareCapabilityResolver
from posterframe.ffmpeg.tonemap import (
    FilterChain,
    ToneMapOptions,
    build_video_filter,
    infer_hdr_class,
    plan_tone_map,
    requires_tone_mapping,
)
from posterframe.models.media import (
    SOFTWARE_DECISION,
    BlackInterval,
    ExtractionAttempt,
    ExtractionResult,
    HardwareDecision,
    HdrClass,
    MediaProfile,
)
from posterframe.utils import format_seek_time
from posterframe.utils.temp_manager import AttemptFileManager

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 50
MAX_RANDOM_DRAWS = 50
MIN_GAP_SECONDS = 10.0
# 길이를 알 수 없을 때 탐색 범위 계산에만 쓰는 값
FALLBACK_DURATION = 3600.0
OUTPUT_FORMATS = ("jpg", "png", "webp")
WEBP_QUALITY = 90


def is_in_black(timestamp: float, intervals: Sequence[BlackInterval]) -> bool:
    """타임스탬프가 검은 구간 중 하나에 속하는지 확인."""
    return any(interval.contains(timestamp) for interval in intervals)


def find_largest_gap(
    intervals: Sequence[BlackInterval],
    total_duration: float,
    min_gap: float = MIN_GAP_SECONDS,
) -> tuple[float, float] | None:
    """검은 구간 사이에서 가장 긴 빈 구간을 찾는다.

    0 ~ 첫 구간, 구간 사이, 마지막 구간 ~ 끝을 모두 후보로 본다.
    겹치는 구간은 이어진 하나로 취급한다.

    Args:
        intervals: 검은 화면 구간
        total_duration: 영상 길이 (초)
        min_gap: 이 길이를 넘어야 후보로 인정 (초)

    Returns:
        ``(start, end)`` 또는 ``min_gap`` 을 넘는 빈 구간이 없으면 None
    """
    if not intervals:
        return (0.0, total_duration) if total_duration > min_gap else None

    ordered = sorted(intervals, key=lambda interval: interval.start)
    gaps: list[tuple[float, float]] = []

    cursor = 0.0
    for interval in ordered:
        if interval.start > cursor:
            gaps.append((cursor, interval.start))
        cursor = max(cursor, interval.end)
    if total_duration > cursor:
        gaps.append((cursor, total_duration))

    candidates = [gap for gap in gaps if gap[1] - gap[0] > min_gap]
    if not candidates:
        return None
    return max(candidates, key=lambda gap: gap[1] - gap[0])


def select_timestamp(
    total_duration: float,
    intervals: Sequence[BlackInterval],
    rng: random.Random,
    max_draws: int = MAX_RANDOM_DRAWS,
) -> float:
    """검은 화면을 피해 추출 시점을 고른다.

    1. 10%~90% 범위에서 최대 ``max_draws`` 번 무작위 추출, 검은 구간 밖이면 채택
    2. 모두 실패하면 가장 긴 빈 구간(10초 초과) 안의 무작위 지점
    3. 그것도 없으면 20%~80% 범위의 무작위 지점 (검은 구간 여부 무시)

    Args:
        total_duration: 영상 길이 (초)
        intervals: 검은 화면 구간
        rng: 시드 가능한 난수 생성기
        max_draws: 무작위 추출 최대 횟수

    Returns:
        [0, total_duration] 범위의 타임스탬프 (초)
    """
    low, high = total_duration * 0.1, total_duration * 0.9
    for _ in range(max_draws):
        candidate = rng.uniform(low, high)
        if not is_in_black(candidate, intervals):
            return candidate

    gap = find_largest_gap(intervals, total_duration)
    if gap is not None:
        logger.debug("Random draws hit black frames; using gap %.1f-%.1fs", *gap)
        return rng.uniform(gap[0], gap[1])

    logger.debug("No usable gap between black intervals; falling back to 20-80%% range")
    return rng.uniform(total_duration * 0.2, total_duration * 0.8)


def _quality_args(output_format: str, quality: int) -> list[str]:
    if output_format == "png":
        return []
    if output_format == "webp":
        return ["-quality", str(WEBP_QUALITY)]
    return ["-q:v", str(quality)]


def build_extract_command(
    input_path: Path,
    output_path: Path,
    timestamp: float,
    decision: HardwareDecision = SOFTWARE_DECISION,
    video_filter: FilterChain | None = None,
    quality: int = 2,
    threads: int | None = None,
    ffmpeg_path: str = "ffmpeg",
) -> list[str]:
    """ffmpeg 단일 프레임 추출 명령 생성.

    -ss 를 -i 앞에 두어 빠른 탐색(keyframe seek)을 사용한다.

    Args:
        input_path: 입력 영상 경로
        output_path: 출력 이미지 경로 (확장자로 포맷 결정)
        timestamp: 추출 시점 (초)
        decision: 디코딩 경로 (하드웨어 init/hwaccel 인자)
        video_filter: ``-vf`` 필터 체인 (비어 있으면 생략)
        quality: JPEG 품질 (1-31, 낮을수록 고품질)
        threads: ffmpeg 스레드 수
        ffmpeg_path: ffmpeg 실행 파일 경로

    Returns:
        명령 인자 리스트
    """
    output_format = output_path.suffix.lstrip(".").lower()
    cmd = [
        ffmpeg_path,
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        *decision.init_args,
        *decision.accel_args,
        "-ss",
        format_seek_time(timestamp),
        "-i",
        str(input_path),
        "-an",
        "-sn",
        "-dn",
    ]
    if video_filter:
        cmd.extend(["-vf", video_filter.render()])
    cmd.extend(["-frames:v", "1"])
    cmd.extend(_quality_args(output_format, quality))
    cmd.extend(thread_args(threads))
    cmd.append(str(output_path))
    return cmd


@dataclass(frozen=True)
class ExtractionSettings:
    """추출 설정.

    Attributes:
        output_dir: 출력 디렉토리 (None이면 원본 영상 디렉토리)
        output_format: jpg / png / webp
        quality: JPEG 품질 (1-31)
        max_retries: 재시도 한도
        attempt_timeout: 시도별 타임아웃 (초)
        threads: ffmpeg ``-threads`` (None이면 코어의 1/4)
        min_brightness: 채택할 프레임의 최소 평균 휘도 (0.0-1.0, 0이면 검사 안 함)
    """

    output_dir: Path | None = None
    output_format: str = "jpg"
    quality: int = 2
    max_retries: int = DEFAULT_MAX_RETRIES
    attempt_timeout: float = 60.0
    threads: int | None = None
    min_brightness: float = DEFAULT_MIN_BRIGHTNESS

    def __post_init__(self) -> None:
        """검증."""
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported output format: {self.output_format}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1: {self.max_retries}")
        if not 1 <= self.quality <= 31:
            raise ValueError(f"quality must be between 1 and 31: {self.quality}")
        if not 0.0 <= self.min_brightness <= 1.0:
            raise ValueError(f"min_brightness must be between 0 and 1: {self.min_brightness}")


class FrameExtractor:
    """재시도·폴백을 포함한 단일 프레임 추출기."""

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        resolver: HardwareCapabilityResolver | None = None,
        settings: ExtractionSettings | None = None,
        tone_map: ToneMapOptions | None = None,
        rng: random.Random | None = None,
        ffmpeg_path: str = "ffmpeg",
        filters: FilterCapabilityDetector | None = None,
    ) -> None:
        """
        초기화.

        Args:
            runner: 공유 ProcessRunner
            resolver: 하드웨어 경로 결정기 (None이면 항상 소프트웨어)
            settings: 추출 설정
            tone_map: 톤 매핑 옵션
            rng: 타임스탬프 선택용 난수 생성기 (테스트에서 시드 고정)
            ffmpeg_path: ffmpeg 실행 파일 경로
            filters: 필터 지원 감지기 (None이면 기본 필터만 사용)
        """
        self.runner = runner or ProcessRunner()
        self.resolver = resolver
        self.settings = settings or ExtractionSettings()
        self.tone_map = tone_map or ToneMapOptions()
        self.rng = rng or random.Random()
        self.ffmpeg_path = ffmpeg_path
        self.filters = filters

    async def extract(
        self,
        profile: MediaProfile,
        black_intervals: Sequence[BlackInterval] = (),
        preferred_timestamp: float | None = None,
    ) -> Path | None:
        """
        포스터 프레임을 추출한다.

        Args:
            profile: 영상 프로파일
            black_intervals: 피해야 할 검은 화면 구간
            preferred_timestamp: 첫 시도에 사용할 시점 (검은 구간이면 무시)

        Returns:
            추출된 이미지 경로 (소유권은 호출자에게 있음). 실패 시 None.
        """
        result = await self.extract_with_report(profile, black_intervals, preferred_timestamp)
        return result.path

    async def extract_with_report(
        self,
        profile: MediaProfile,
        black_intervals: Sequence[BlackInterval] = (),
        preferred_timestamp: float | None = None,
    ) -> ExtractionResult:
        """:meth:`extract` 와 같지만 시도 기록을 함께 반환한다."""
        duration = profile.duration_seconds or FALLBACK_DURATION
        hdr_class = infer_hdr_class(profile)
        needs_tone_mapping = self.tone_map.enabled and requires_tone_mapping(hdr_class)
        output_dir = self.settings.output_dir or profile.path.parent
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Cannot create output directory %s: %s", output_dir, e)
            return ExtractionResult(profile.path)

        filters = await self._filters() if needs_tone_mapping else NO_FILTER_CAPABILITIES
        attempts: list[ExtractionAttempt] = []
        brightest: ExtractionAttempt | None = None
        files = AttemptFileManager(output_dir, profile.path.stem, self.settings.output_format)

        with files:
            for slot in range(self.settings.max_retries):
                timestamp = self._pick_timestamp(
                    slot, duration, black_intervals, preferred_timestamp
                )
                decision = await self._resolve(profile, hdr_class, needs_tone_mapping)
                attempt = await self._attempt(
                    profile, hdr_class, timestamp, decision, files, filters
                )
                attempts.append(attempt)

                if _decode_failed(attempt) and attempt.used_hardware:
                    if self.resolver is not None:
                        self.resolver.mark_failed(profile.video_codec)
                    attempt = await self._attempt(
                        profile, hdr_class, timestamp, SOFTWARE_DECISION, files, filters
                    )
                    attempts.append(attempt)

                if attempt.success:
                    path = files.release(attempt.output_path)
                    logger.info(
                        "Poster frame extracted: %s (at %.1fs, %s, attempt %d)",
                        path.name,
                        timestamp,
                        "hardware" if attempt.used_hardware else "software",
                        slot + 1,
                    )
                    return ExtractionResult(profile.path, path, tuple(attempts))

                if attempt.too_dark:
                    brightest = self._keep_brightest(brightest, attempt, files)

            if brightest is not None:
                path = files.release(brightest.output_path)
                logger.warning(
                    "No frame of %s passed the brightness check; using brightest frame "
                    "(at %.1fs, brightness %.3f)",
                    profile.path.name,
                    brightest.timestamp,
                    brightest.brightness or 0.0,
                )
                return ExtractionResult(profile.path, path, tuple(attempts))

        logger.warning(
            "Failed to extract poster frame from %s after %d attempts",
            profile.path.name,
            self.settings.max_retries,
        )
        return ExtractionResult(profile.path, None, tuple(attempts))

    async def _filters(self) -> FilterCapabilities:
        if self.filters is None:
            return NO_FILTER_CAPABILITIES
        return await self.filters.detect()

    @staticmethod
    def _keep_brightest(
        current: ExtractionAttempt | None,
        candidate: ExtractionAttempt,
        files: AttemptFileManager,
    ) -> ExtractionAttempt | None:
        """더 밝은 쪽만 남기고 나머지 파일은 삭제한다. 휘도 0 프레임은 후보가 아니다."""
        best = 0.0
        if current is not None and current.brightness is not None:
            best = current.brightness
        if (candidate.brightness or 0.0) > best:
            if current is not None:
                files.discard(current.output_path)
            return candidate
        files.discard(candidate.output_path)
        return current

    def _pick_timestamp(
        self,
        slot: int,
        duration: float,
        intervals: Sequence[BlackInterval],
        preferred: float | None,
    ) -> float:
        if (
            slot == 0
            and preferred is not None
            and 0 <= preferred <= duration
            and not is_in_black(preferred, intervals)
        ):
            return preferred
        return select_timestamp(duration, intervals, self.rng)

    async def _resolve(
        self,
        profile: MediaProfile,
        hdr_class: HdrClass,
        needs_tone_mapping: bool,
    ) -> HardwareDecision:
        if self.resolver is None:
            return SOFTWARE_DECISION
        # infer_hdr_class 를 거친 UNKNOWN 은 8비트 비-BT.2020 영상이므로 SDR 과 같은 경로
        if hdr_class is HdrClass.UNKNOWN:
            logger.debug("Treating unclassified 8-bit %s as SDR", profile.path.name)
        return await self.resolver.resolve_validated(
            profile.video_codec, needs_tone_mapping=needs_tone_mapping
        )

    async def _attempt(
        self,
        profile: MediaProfile,
        hdr_class: HdrClass,
        timestamp: float,
        decision: HardwareDecision,
        files: AttemptFileManager,
        filters: FilterCapabilities = NO_FILTER_CAPABILITIES,
    ) -> ExtractionAttempt:
        """추출 시도 1회. 실패하면 부분 파일을 삭제한다.

        밝기 기준에만 못 미친 프레임은 삭제하지 않고 ``too_dark`` 로 표시한다.
        """
        output_path = files.new_path()
        plan = plan_tone_map(hdr_class, decision.backend, self.tone_map, filters=filters)
        video_filter = build_video_filter(plan, decision.backend)
        cmd = build_extract_command(
            profile.path,
            output_path,
            timestamp,
            decision,
            video_filter,
            self.settings.quality,
            self.settings.threads,
            self.ffmpeg_path,
        )
        result = await self.runner.run(cmd[0], cmd[1:], timeout=self.settings.attempt_timeout)

        if not (result.ok and _has_output(output_path)):
            files.discard(output_path)
            _log_failed_attempt(result, timestamp, decision)
            return ExtractionAttempt(
                output_path=output_path,
                timestamp=timestamp,
                used_hardware=decision.use_hardware,
                success=False,
                returncode=result.returncode,
                diagnostics=result.stderr[-2000:],
            )

        brightness: float | None = None
        too_dark = False
        if self.settings.min_brightness > 0:
            measured = await asyncio.to_thread(measure_brightness, output_path)
            # 디코딩할 수 없는 이미지는 검은 프레임과 같이 취급
            brightness = measured if measured is not None else 0.0
            too_dark = not is_bright_enough(brightness, self.settings.min_brightness)
            if too_dark:
                logger.debug(
                    "Frame at %.1fs too dark (brightness %.3f < %.3f)",
                    timestamp,
                    brightness,
                    self.settings.min_brightness,
                )

        return ExtractionAttempt(
            output_path=output_path,
            timestamp=timestamp,
            used_hardware=decision.use_hardware,
            success=not too_dark,
            returncode=result.returncode,
            diagnostics=result.stderr[-2000:],
            brightness=brightness,
            too_dark=too_dark,
        )


def _decode_failed(attempt: ExtractionAttempt) -> bool:
    """ffmpeg 단계에서 실패했는지 (밝기 검사 탈락은 제외)."""
    return not attempt.success and not attempt.too_dark


def _log_failed_attempt(
    result: ProcessResult, timestamp: float, decision: HardwareDecision
) -> None:
    logger.debug(
        "Extraction attempt failed at %.1fs (%s, code %d): %s",
        timestamp,
        decision.backend.value,
        result.returncode,
        result.stderr.strip()[-300:],
    )
    logger.debug("Failed command: %s", result.command_line)


def _has_output(path: Path) -> bool:
    """출력 파일이 존재하고 비어 있지 않은지 확인."""
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False
