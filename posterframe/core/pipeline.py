"""포스터 프레임 추출 파이프라인.

조회(Prober) → 검은 화면 감지(BlackSceneDetector) → 추출(FrameExtractor) 순서로
한 파일을 처리하고, 여러 파일 처리 시 실패한 파일이 전체를 중단시키지 않도록 한다.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from posterframe.core.cache import BlackIntervalCache
from posterframe.core.detector import BlackDetectSettings, BlackSceneDetector
from posterframe.core.extractor import ExtractionSettings, FrameExtractor
from posterframe.core.prober import Prober, ProbeError
from posterframe.ffmpeg.executor import ProcessRunner
from posterframe.ffmpeg.filters import FilterCapabilityDetector
from posterframe.ffmpeg.hardware import (
    FailedCodecSet,
    HardwareCapabilityResolver,
    HardwareSettings,
)
from posterframe.ffmpeg.tonemap import ToneMapOptions
from posterframe.models.media import ExtractionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchSummary:
    """여러 파일 처리 결과 요약."""

    results: tuple[ExtractionResult, ...]

    @property
    def succeeded(self) -> int:
        """성공한 파일 수."""
        return sum(1 for result in self.results if result.ok)

    @property
    def failed(self) -> int:
        """실패한 파일 수."""
        return len(self.results) - self.succeeded


class PosterFramePipeline:
    """조회·감지·추출을 묶은 파이프라인.

    구성 요소는 하나의 :class:`ProcessRunner` 를 공유해야 동시 실행 제한이 전체에 적용된다.
    """

    def __init__(
        self,
        prober: Prober,
        detector: BlackSceneDetector,
        extractor: FrameExtractor,
    ) -> None:
        """초기화."""
        self.prober = prober
        self.detector = detector
        self.extractor = extractor

    @classmethod
    def create(
        cls,
        *,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        max_concurrency: int | None = None,
        hardware: HardwareSettings | None = None,
        blackdetect: BlackDetectSettings | None = None,
        extraction: ExtractionSettings | None = None,
        tone_map: ToneMapOptions | None = None,
        cache: BlackIntervalCache | None = None,
        failed_codecs: FailedCodecSet | None = None,
        rng: random.Random | None = None,
    ) -> PosterFramePipeline:
        """
        기본 구성으로 파이프라인을 만든다.

        Args:
            ffmpeg_path: ffmpeg 실행 파일 경로
            ffprobe_path: ffprobe 실행 파일 경로
            max_concurrency: 동시 서브프로세스 수 (None이면 코어 기반)
            hardware: 호스트 하드웨어 설정
            blackdetect: 검은 화면 감지 설정
            extraction: 추출 설정
            tone_map: 톤 매핑 옵션
            cache: 공유 구간 캐시
            failed_codecs: 공유 실패 코덱 집합
            rng: 타임스탬프 선택용 난수 생성기

        Returns:
            구성된 파이프라인
        """
        runner = ProcessRunner(max_concurrency=max_concurrency)
        extraction_settings = extraction or ExtractionSettings()
        resolver = HardwareCapabilityResolver(
            hardware,
            runner=runner,
            failed_codecs=failed_codecs,
            ffmpeg_path=ffmpeg_path,
        )
        return cls(
            prober=Prober(runner, ffprobe_path=ffprobe_path),
            detector=BlackSceneDetector(
                runner,
                cache=cache,
                settings=blackdetect,
                ffmpeg_path=ffmpeg_path,
                threads=extraction_settings.threads,
            ),
            extractor=FrameExtractor(
                runner,
                resolver=resolver,
                settings=extraction_settings,
                tone_map=tone_map,
                rng=rng,
                ffmpeg_path=ffmpeg_path,
                filters=FilterCapabilityDetector(runner, ffmpeg_path=ffmpeg_path),
            ),
        )

    async def run(
        self,
        video_path: Path,
        duration_hint: float | None = None,
        preferred_timestamp: float | None = None,
    ) -> ExtractionResult:
        """
        파일 1개를 처리한다.

        Args:
            video_path: 영상 파일 경로
            duration_hint: 이미 알고 있는 영상 길이 (초)
            preferred_timestamp: 우선 시도할 추출 시점 (초)

        Returns:
            추출 결과. 파일이 없거나 모든 시도가 실패하면 ``path`` 가 None.
        """
        try:
            profile = await self.prober.probe(video_path, duration_hint)
        except ProbeError as e:
            logger.warning("%s", e)
            return ExtractionResult(source=video_path)

        intervals = await self.detector.detect(video_path, profile.duration_seconds)
        return await self.extractor.extract_with_report(profile, intervals, preferred_timestamp)

    async def extract(
        self,
        video_path: Path,
        duration_hint: float | None = None,
        preferred_timestamp: float | None = None,
    ) -> Path | None:
        """파일 1개를 처리하고 이미지 경로만 반환한다."""
        result = await self.run(video_path, duration_hint, preferred_timestamp)
        return result.path

    async def extract_many(
        self,
        video_paths: Iterable[Path],
        preferred_timestamp: float | None = None,
    ) -> BatchSummary:
        """
        여러 파일을 동시에 처리한다.

        한 파일의 실패(예상하지 못한 예외 포함)는 다른 파일 처리에 영향을 주지 않는다.

        Args:
            video_paths: 영상 파일 경로 목록
            preferred_timestamp: 모든 파일에 우선 시도할 추출 시점 (초)

        Returns:
            입력 순서대로 정렬된 결과 요약
        """
        paths = list(video_paths)
        results = await asyncio.gather(
            *(self._run_safely(path, preferred_timestamp) for path in paths)
        )
        summary = BatchSummary(tuple(results))
        logger.info(
            "Poster frames: %d succeeded, %d failed",
            summary.succeeded,
            summary.failed,
        )
        self._log_disabled_hardware()
        return summary

    def _log_disabled_hardware(self) -> None:
        resolver = self.extractor.resolver
        if resolver is None:
            return
        disabled = resolver.failed_codecs.snapshot()
        if disabled:
            logger.info(
                "Hardware decoding disabled during this run for: %s",
                ", ".join(sorted(disabled)),
            )

    async def _run_safely(
        self,
        video_path: Path,
        preferred_timestamp: float | None,
    ) -> ExtractionResult:
        try:
            return await self.run(video_path, preferred_timestamp=preferred_timestamp)
        except Exception:
            logger.exception("Unexpected error while processing %s", video_path)
            return ExtractionResult(source=video_path)
