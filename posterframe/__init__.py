"""posterframe: 영상에서 포스터용 대표 프레임을 추출한다."""

__version__ = "0.1.0"
