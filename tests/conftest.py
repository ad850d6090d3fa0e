"""pytest 설정 및 공통 fixture."""

import os
from collections.abc import Generator
from pathlib import Path

import pytest

ENV_PREFIX = "POSTERFRAME_"


@pytest.fixture(autouse=True)
def isolate_env() -> Generator[None]:
    """
    테스트 간 환경변수 격리.

    ``POSTERFRAME_*`` 환경변수를 테스트 시작 전에 제거하고,
    테스트 종료 후 원래 값으로 복원한다. ``apply_config_to_env`` 가
    주입한 값이 다른 테스트로 새지 않도록 한다.
    """
    saved = {key: value for key, value in os.environ.items() if key.startswith(ENV_PREFIX)}
    for key in saved:
        del os.environ[key]

    yield

    for key in [key for key in os.environ if key.startswith(ENV_PREFIX)]:
        del os.environ[key]
    os.environ.update(saved)


@pytest.fixture
def temp_video_file(tmp_path: Path) -> Path:
    """임시 영상 파일 (내용은 의미 없음, 실제 디코딩에는 쓰지 않는다)."""
    video_file = tmp_path / "movie.mkv"
    video_file.write_bytes(b"\x1a\x45\xdf\xa3" + b"\x00" * 1024)
    return video_file
