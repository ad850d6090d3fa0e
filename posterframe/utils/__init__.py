"""공용 유틸리티 함수.

프로젝트 전반에서 사용되는 작은 헬퍼 함수들을 모아둔다.
"""


def truncate_path(path: str, max_len: int = 50) -> str:
    """긴 경로를 말줄임표로 줄여 표시한다.

    Args:
        path: 원본 경로 문자열.
        max_len: 최대 출력 길이 (기본 50자).

    Returns:
        잘린 경로 문자열. 예: ``"...library/show/episode.mkv"``.
    """
    if len(path) <= max_len:
        return path
    tail_len = max_len - 3
    return "..." + path[-tail_len:]


def format_seek_time(seconds: float) -> str:
    """초를 ffmpeg ``-ss`` 용 ``HH:MM:SS.mmm`` 문자열로 변환한다.

    음수는 0으로 취급한다.
    """
    total_ms = round(max(0.0, seconds) * 1000)
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def parse_timestamp(timestamp_str: str) -> float:
    """타임스탬프 문자열을 초 단위로 변환.

    지원 형식: HH:MM:SS(.ms), MM:SS(.ms), SS(.ms)

    Args:
        timestamp_str: 타임스탬프 문자열

    Returns:
        초 단위 float

    Raises:
        ValueError: 잘못된 형식이거나 음수인 경우
    """
    s = timestamp_str.strip()
    if not s:
        raise ValueError(f"Invalid timestamp format: '{timestamp_str}'")

    parts = s.split(":")
    try:
        if len(parts) == 3:
            result = int(parts[0]) * 3600 + int(parts[1]) * 60 + float(parts[2])
        elif len(parts) == 2:
            result = int(parts[0]) * 60 + float(parts[1])
        elif len(parts) == 1:
            result = float(parts[0])
        else:
            raise ValueError(f"Invalid timestamp format: '{timestamp_str}'")
    except ValueError as e:
        if "Invalid timestamp" in str(e):
            raise
        raise ValueError(f"Invalid timestamp format: '{timestamp_str}'") from e

    if result < 0:
        raise ValueError(f"Timestamp must not be negative: {result}")

    return result
