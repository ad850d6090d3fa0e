"""단위 테스트 공통 헬퍼.

실제 ffmpeg 대신 명령을 기록하고 미리 정한 결과를 돌려주는 :class:`FakeRunner` 를 제공한다.
"""

from collections.abc import Callable
from pathlib import Path

import pytest
from PIL import Image

from posterframe.ffmpeg.executor import ProcessResult

Handler = Callable[[list[str]], ProcessResult]


def ok(command: list[str], stdout: str = "", stderr: str = "") -> ProcessResult:
    """성공 결과."""
    return ProcessResult(args=tuple(command), returncode=0, stdout=stdout, stderr=stderr)


def fail(command: list[str], returncode: int = 1, stderr: str = "error") -> ProcessResult:
    """실패 결과."""
    return ProcessResult(args=tuple(command), returncode=returncode, stderr=stderr)


def save_frame(path: Path, gray: int = 200) -> None:
    """단색 16x16 이미지 저장 (확장자로 포맷 결정)."""
    Image.new("RGB", (16, 16), (gray, gray, gray)).save(path)


def write_image(command: list[str]) -> ProcessResult:
    """ffmpeg 추출 성공을 흉내낸다 (마지막 인자 경로에 밝은 이미지 기록)."""
    save_frame(Path(command[-1]))
    return ok(command)


def write_dark_image(command: list[str]) -> ProcessResult:
    """거의 검은 프레임 추출을 흉내낸다 (평균 휘도 약 0.016)."""
    save_frame(Path(command[-1]), gray=4)
    return ok(command)


def is_hardware_command(command: list[str]) -> bool:
    """하드웨어 가속 인자를 포함한 명령인지."""
    return "-hwaccel" in command


def is_validation_command(command: list[str]) -> bool:
    """하드웨어 검증 명령인지."""
    return "nullsrc=s=64x64:d=0.1" in command


class FakeRunner:
    """ProcessRunner 대역.

    호출된 명령을 ``calls`` 에 기록하고 ``handler`` 의 반환값을 결과로 돌려준다.
    """

    def __init__(self, handler: Handler | None = None) -> None:
        self.handler: Handler = handler or ok
        self.calls: list[list[str]] = []
        self.timeouts: list[float | None] = []

    async def run(
        self,
        executable: str,
        args: list[str],
        timeout: float | None = None,
    ) -> ProcessResult:
        command = [executable, *args]
        self.calls.append(command)
        self.timeouts.append(timeout)
        return self.handler(command)

    def commands_with(self, token: str) -> list[list[str]]:
        """인자에 ``token`` 이 포함된 명령만 반환."""
        return [command for command in self.calls if token in command]


@pytest.fixture
def fake_runner() -> FakeRunner:
    """항상 성공(출력 없음)하는 FakeRunner."""
    return FakeRunner()
