"""추출 시도 파일 관리."""

from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^\w.-]+")


def safe_stem(name: str, max_length: int = 60) -> str:
    """파일명에 쓸 수 있도록 원본 파일명을 정리한다."""
    stem = _UNSAFE_CHARS.sub("_", name).strip("._")
    return stem[:max_length] or "frame"


class AttemptFileManager:
    """추출 시도별 출력 파일 관리자.

    시도마다 새 경로를 발급하고, 호출자에게 넘기지 않은(:meth:`release`) 파일은
    컨텍스트 종료 시 모두 삭제한다. 예외나 취소로 빠져나가도 부분 파일이 남지 않는다.
    """

    def __init__(self, output_dir: Path, stem: str, extension: str = "jpg") -> None:
        """
        초기화.

        Args:
            output_dir: 출력 디렉토리 (없으면 생성)
            stem: 출력 파일명 앞부분
            extension: 이미지 확장자
        """
        self.output_dir = output_dir
        self.stem = safe_stem(stem)
        self.extension = extension.lstrip(".")
        self._pending: list[Path] = []

    def __enter__(self) -> AttemptFileManager:
        """Context manager 진입."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager 종료."""
        self.cleanup()

    @property
    def pending(self) -> list[Path]:
        """아직 정리 대상인 시도 파일."""
        return list(self._pending)

    def new_path(self) -> Path:
        """
        시도용 고유 출력 경로 생성.

        Returns:
            ``<output_dir>/<stem>_<8자리 hex>.<ext>`` 경로
        """
        path = self.output_dir / f"{self.stem}_{uuid.uuid4().hex[:8]}.{self.extension}"
        self._pending.append(path)
        return path

    def discard(self, path: Path) -> None:
        """
        실패한 시도 파일 삭제.

        Args:
            path: 시도 파일 경로
        """
        self._remove(path)
        if path in self._pending:
            self._pending.remove(path)

    def release(self, path: Path) -> Path:
        """성공한 시도 파일의 소유권을 호출자에게 넘긴다 (정리 대상에서 제외)."""
        if path in self._pending:
            self._pending.remove(path)
        return path

    def cleanup(self) -> None:
        """남아 있는 시도 파일 정리."""
        for path in self._pending:
            self._remove(path)
        self._pending.clear()

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            if path.exists():
                path.unlink()
                logger.debug(f"Removed attempt file: {path}")
        except OSError as e:
            logger.warning(f"Failed to remove attempt file {path}: {e}")
