"""도메인 모델."""
