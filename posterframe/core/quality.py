"""추출된 프레임 밝기 검사.

평균 휘도는 ITU-R 601 가중치(0.299R + 0.587G + 0.114B)를 0~1 로 정규화한 값이다.
"""

from __future__ import annotations

import logging
from pathlib import Path

from PIL import Image, ImageStat

logger = logging.getLogger(__name__)

DEFAULT_MIN_BRIGHTNESS = 0.05


def measure_brightness(path: Path) -> float | None:
    """
    이미지의 평균 휘도를 계산한다.

    Args:
        path: 이미지 경로

    Returns:
        0.0 ~ 1.0 평균 휘도. 이미지를 읽을 수 없으면 None.
    """
    try:
        with Image.open(path) as image:
            grayscale = image.convert("L")
            stat = ImageStat.Stat(grayscale)
            return float(stat.mean[0]) / 255.0
    except (OSError, ValueError) as e:
        logger.debug("Could not decode frame %s: %s", path, e)
        return None


def is_bright_enough(brightness: float, threshold: float = DEFAULT_MIN_BRIGHTNESS) -> bool:
    """임계값 이상이면 통과."""
    return brightness >= threshold
