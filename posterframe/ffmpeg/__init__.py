"""ffmpeg 실행, 하드웨어 가속, 톤 매핑."""
