"""E2E 테스트 공통 fixture 및 헬퍼.

실제 ffmpeg / ffprobe 로 테스트 영상을 만들고 파이프라인 전체를 실행한다.
"""

import shutil
import subprocess
from pathlib import Path

import pytest

FFMPEG_AVAILABLE = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def create_test_video(
    path: Path,
    *,
    duration: float = 10.0,
    width: int = 320,
    height: int = 240,
    fps: int = 10,
    black_until: float | None = None,
) -> Path:
    """ffmpeg로 테스트용 영상을 생성한다.

    Args:
        path: 출력 파일 경로
        duration: 길이(초)
        width: 가로 해상도
        height: 세로 해상도
        fps: 프레임 레이트
        black_until: 지정하면 0초부터 이 시각까지 검은 화면
    """
    cmd = [
        "ffmpeg",
        "-y",
        "-hide_banner",
        "-loglevel",
        "error",
        "-f",
        "lavfi",
        "-i",
        f"testsrc=duration={duration}:size={width}x{height}:rate={fps}",
    ]
    if black_until is not None:
        cmd += [
            "-vf",
            f"drawbox=x=0:y=0:w=iw:h=ih:color=black:t=fill:enable='lt(t,{black_until})'",
        ]
    # mpeg4 인코더는 모든 ffmpeg 빌드에 포함된다
    cmd += ["-c:v", "mpeg4", "-q:v", "5", "-pix_fmt", "yuv420p", str(path)]

    result = subprocess.run(cmd, capture_output=True, text=True, timeout=120)
    if result.returncode != 0:
        raise RuntimeError(f"ffmpeg failed: {result.stderr}")
    return path


@pytest.fixture
def e2e_video_dir(tmp_path: Path) -> Path:
    """테스트 영상 디렉토리."""
    video_dir = tmp_path / "videos"
    video_dir.mkdir()
    return video_dir


@pytest.fixture
def e2e_output_dir(tmp_path: Path) -> Path:
    """포스터 이미지 출력 디렉토리."""
    return tmp_path / "posters"


@pytest.fixture
def no_user_config(tmp_path: Path) -> Path:
    """존재하지 않는 설정 파일 경로 (사용자 홈 설정 격리용)."""
    return tmp_path / "no-config.toml"
