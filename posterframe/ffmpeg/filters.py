"""ffmpeg 필터 지원 여부 감지.

빌드마다 포함된 필터가 다르므로(``libplacebo``, ``tonemapx`` 등) 톤 매핑 전략을
고르기 전에 ``ffmpeg -filters`` 목록을 한 번 조회해 프로세스 수명 동안 재사용한다.
``libplacebo`` 는 목록에 있어도 Vulkan 장치가 없으면 초기화에 실패하므로
1프레임 검증 실행까지 통과해야 사용 가능으로 본다.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field

from posterframe.ffmpeg.executor import FFmpegError, ProcessRunner

logger = logging.getLogger(__name__)

LIBPLACEBO = "libplacebo"
TONEMAPX = "tonemapx"

# " TSC libplacebo        V->V       Apply various GPU filters from libplacebo."
_FILTER_LINE_RE = re.compile(r"^\s*[TSC.|]{2,3}\s+(\w+)\s+\S*->\S*")


@dataclass(frozen=True)
class FilterCapabilities:
    """사용 가능한 ffmpeg 필터 이름 집합."""

    names: frozenset[str] = field(default_factory=frozenset)

    def has(self, name: str) -> bool:
        """필터 사용 가능 여부."""
        return name in self.names


NO_FILTER_CAPABILITIES = FilterCapabilities()


def parse_filter_list(output: str) -> frozenset[str]:
    """``ffmpeg -filters`` 출력에서 필터 이름만 추출한다."""
    names = set()
    for line in output.splitlines():
        match = _FILTER_LINE_RE.match(line)
        if match:
            names.add(match.group(1))
    return frozenset(names)


def build_filter_list_command(ffmpeg_path: str = "ffmpeg") -> list[str]:
    """필터 목록 조회 명령."""
    return [ffmpeg_path, "-hide_banner", "-filters"]


def build_libplacebo_check_command(ffmpeg_path: str = "ffmpeg") -> list[str]:
    """libplacebo 초기화 검증 명령 (64x64 단색 1프레임)."""
    return [
        ffmpeg_path,
        "-hide_banner",
        "-loglevel",
        "error",
        "-f",
        "lavfi",
        "-i",
        "color=c=black:s=64x64:d=0.1",
        "-vf",
        LIBPLACEBO,
        "-frames:v",
        "1",
        "-f",
        "null",
        "-",
    ]


class FilterCapabilityDetector:
    """필터 지원 여부를 한 번만 조회하고 결과를 캐시한다."""

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        ffmpeg_path: str = "ffmpeg",
        timeout: float = 15.0,
    ) -> None:
        """
        초기화.

        Args:
            runner: 공유 ProcessRunner
            ffmpeg_path: ffmpeg 실행 파일 경로
            timeout: 조회 명령 타임아웃 (초)
        """
        self.runner = runner or ProcessRunner()
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self._capabilities: FilterCapabilities | None = None
        self._lock = asyncio.Lock()

    async def detect(self) -> FilterCapabilities:
        """
        사용 가능한 필터를 조회한다 (첫 호출에서만 ffmpeg 실행).

        Returns:
            필터 지원 정보. 조회에 실패하면 빈 정보.
        """
        async with self._lock:
            if self._capabilities is None:
                self._capabilities = await self._detect()
            return self._capabilities

    def clear_cache(self) -> None:
        """캐시된 조회 결과 삭제."""
        self._capabilities = None

    async def _detect(self) -> FilterCapabilities:
        cmd = build_filter_list_command(self.ffmpeg_path)
        try:
            result = (await self.runner.run(cmd[0], cmd[1:], timeout=self.timeout)).check()
        except FFmpegError as e:
            logger.warning("Could not list ffmpeg filters: %s", e)
            return NO_FILTER_CAPABILITIES

        names = parse_filter_list(result.stdout)
        if LIBPLACEBO in names and not await self._libplacebo_works():
            names = names - {LIBPLACEBO}
        logger.debug(
            "ffmpeg filters: libplacebo=%s tonemapx=%s",
            LIBPLACEBO in names,
            TONEMAPX in names,
        )
        return FilterCapabilities(names)

    async def _libplacebo_works(self) -> bool:
        cmd = build_libplacebo_check_command(self.ffmpeg_path)
        try:
            (await self.runner.run(cmd[0], cmd[1:], timeout=self.timeout)).check()
        except FFmpegError as e:
            logger.warning("libplacebo is listed but cannot be initialised: %s", e)
            return False
        return True
