"""영상 파일 스캐너.

CLI 인자로 받은 파일·디렉토리 목록을 추출 대상 경로 목록으로 펼친다.

- 파일: 확장자와 무관하게 그대로 포함 (존재하지 않아도 결과에서 실패로 보고됨)
- 디렉토리: ``VIDEO_EXTENSIONS`` 확장자 파일을 재귀 탐색
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset(
    {
        ".mp4",
        ".mov",
        ".mkv",
        ".m4v",
        ".avi",
        ".webm",
        ".ts",
        ".m2ts",
        ".mts",
        ".wmv",
    }
)


def _is_video_file(path: Path) -> bool:
    """영상 파일 여부 확인 (macOS 리소스 포크 ``._`` 파일 제외)."""
    return path.suffix.lower() in VIDEO_EXTENSIONS and not path.name.startswith("._")


def _scan_directory(directory: Path) -> list[Path]:
    """디렉토리 재귀 스캔."""
    return sorted(path for path in directory.rglob("*") if path.is_file() and _is_video_file(path))


def collect_video_paths(targets: list[Path]) -> list[Path]:
    """
    추출 대상 경로 수집.

    Args:
        targets: 파일 또는 디렉토리 목록

    Returns:
        중복이 제거된 경로 목록 (입력 순서 유지)
    """
    seen: set[Path] = set()
    paths: list[Path] = []

    for target in targets:
        if target.is_dir():
            found = _scan_directory(target)
            if not found:
                logger.warning("No video files found in %s", target)
        else:
            found = [target]

        for path in found:
            key = path.resolve()
            if key not in seen:
                seen.add(key)
                paths.append(path)

    return paths
