"""FFmpeg 서브프로세스 실행기.

ffmpeg / ffprobe 를 asyncio 서브프로세스로 실행하고 출력을 수집한다.
0이 아닌 종료 코드는 예외가 아니라 :class:`ProcessResult` 데이터로 돌려주므로
호출자는 예외 없이 재시도·폴백 로직을 구성할 수 있다.

주요 역할:
    - 동시 실행 수 제한 (``asyncio.Semaphore``)
    - stdout / stderr 동시 수집 (대용량 stderr 교착 방지)
    - 호출 단위 타임아웃 및 취소 시 자식 프로세스 종료
    - ffmpeg 내부 스레드 수 기본값 계산 (``thread_args``)
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# 실행 파일을 찾지 못했을 때 셸 관례를 따른다
LAUNCH_FAILURE_RETURNCODE = 127
TIMEOUT_RETURNCODE = -9


class FFmpegError(Exception):
    """FFmpeg 프로세스가 실패했을 때 발생하는 예외.

    :meth:`ProcessResult.check` 로 예외 기반 흐름이 필요한 호출자만 사용한다.

    Attributes:
        stderr: FFmpeg stderr 전체 출력 (디버깅용)
    """

    def __init__(self, message: str, stderr: str | None = None) -> None:
        """초기화."""
        super().__init__(message)
        self.stderr = stderr

    def __str__(self) -> str:
        """에러 메시지와 stderr 마지막 줄들을 함께 표시."""
        base = super().__str__()
        if not self.stderr:
            return base
        # stderr 마지막 20줄만 표시
        lines = self.stderr.strip().splitlines()
        tail = lines[-20:]
        snippet = "\n".join(tail)
        return f"{base}\n--- FFmpeg stderr (last {len(tail)} lines) ---\n{snippet}"


@dataclass(frozen=True)
class ProcessResult:
    """서브프로세스 실행 결과.

    Attributes:
        args: 실행한 전체 명령 (실행 파일 포함)
        returncode: 종료 코드. 실행 불가 시 127, 타임아웃 시 -9
        stdout: 표준 출력
        stderr: 표준 에러 (ffmpeg 진단 메시지)
        timed_out: 타임아웃으로 강제 종료되었는지 여부
    """

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        """정상 종료 여부."""
        return self.returncode == 0 and not self.timed_out

    @property
    def launch_failed(self) -> bool:
        """실행 파일을 시작하지 못했는지 여부."""
        return self.returncode == LAUNCH_FAILURE_RETURNCODE

    @property
    def output(self) -> str:
        """stdout과 stderr를 합친 출력."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr

    @property
    def command_line(self) -> str:
        """로그용 명령 문자열."""
        return shlex.join(self.args)

    def check(self) -> ProcessResult:
        """실패한 결과면 :class:`FFmpegError` 를 raise 한다.

        Returns:
            성공한 경우 자기 자신

        Raises:
            FFmpegError: 0이 아닌 종료 코드 또는 타임아웃
        """
        if self.timed_out:
            raise FFmpegError(f"Process timed out: {self.args[0]}", self.stderr)
        if self.returncode != 0:
            raise FFmpegError(
                f"Process failed with code {self.returncode}: {self.args[0]}",
                self.stderr,
            )
        return self


def default_max_concurrency(cpu_count: int | None = None) -> int:
    """동시 서브프로세스 수 기본값 (코어 2개를 남기고 절반)."""
    cores = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    return max(1, (cores - 2) // 2)


def default_thread_count(cpu_count: int | None = None) -> int:
    """ffmpeg ``-threads`` 기본값 (코어의 1/4)."""
    cores = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    return max(1, cores // 4)


def thread_args(threads: int | None = None) -> list[str]:
    """ffmpeg 스레드 제한 인자를 반환한다."""
    count = threads if threads is not None else default_thread_count()
    return ["-threads", str(max(1, count))]


async def _kill_process(process: asyncio.subprocess.Process) -> None:
    """자식 프로세스를 종료하고 회수한다."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


class ProcessRunner:
    """동시 실행 수가 제한된 비동기 서브프로세스 실행기.

    하나의 인스턴스를 파이프라인 전체가 공유해야 동시 실행 제한이 의미를 가진다.
    """

    def __init__(
        self,
        max_concurrency: int | None = None,
        default_timeout: float | None = None,
    ) -> None:
        """
        초기화.

        Args:
            max_concurrency: 동시에 실행할 최대 프로세스 수 (기본: 코어 기반)
            default_timeout: 호출에서 타임아웃을 지정하지 않았을 때 쓰는 값 (초)
        """
        self.max_concurrency = max_concurrency or default_max_concurrency()
        self.default_timeout = default_timeout
        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    async def run(
        self,
        executable: str,
        args: list[str],
        timeout: float | None = None,
    ) -> ProcessResult:
        """
        프로세스를 실행하고 종료까지 기다린다.

        Args:
            executable: 실행 파일 경로 또는 이름
            args: 실행 인자
            timeout: 벽시계 타임아웃 (초). None이면 ``default_timeout``

        Returns:
            실행 결과. 실패도 예외 대신 결과로 반환된다.

        Raises:
            asyncio.CancelledError: 호출이 취소된 경우 (자식 프로세스는 종료됨)
        """
        limit = timeout if timeout is not None else self.default_timeout
        async with self._semaphore:
            return await self._run(executable, args, limit)

    async def _run(
        self,
        executable: str,
        args: list[str],
        timeout: float | None,
    ) -> ProcessResult:
        command = (executable, *args)
        logger.debug("Running: %s", shlex.join(command))

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning("Failed to launch %s: %s", executable, e)
            return ProcessResult(
                args=command,
                returncode=LAUNCH_FAILURE_RETURNCODE,
                stderr=str(e),
            )

        try:
            if timeout is not None:
                stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
            else:
                stdout, stderr = await process.communicate()
        except TimeoutError:
            await _kill_process(process)
            logger.warning("Process timed out after %.1fs: %s", timeout, executable)
            return ProcessResult(
                args=command,
                returncode=TIMEOUT_RETURNCODE,
                stderr=f"timed out after {timeout}s",
                timed_out=True,
            )
        except asyncio.CancelledError:
            await _kill_process(process)
            logger.debug("Process cancelled: %s", executable)
            raise

        result = ProcessResult(
            args=command,
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if not result.ok:
            logger.debug("Process exited with code %d: %s", result.returncode, executable)
        return result
