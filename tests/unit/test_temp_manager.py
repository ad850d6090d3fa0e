"""추출 시도 파일 관리 테스트."""

import re
from pathlib import Path

import pytest

from posterframe.utils.temp_manager import AttemptFileManager, safe_stem


class TestSafeStem:
    """safe_stem 테스트."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("movie", "movie"),
            ("My Movie (2024)", "My_Movie_2024"),
            ("..hidden", "hidden"),
            ("???", "frame"),
        ],
    )
    def test_sanitizes(self, name: str, expected: str) -> None:
        """파일명에 쓸 수 없는 문자 치환."""
        assert safe_stem(name) == expected

    def test_truncates(self) -> None:
        """길이 제한."""
        assert len(safe_stem("a" * 200)) == 60


class TestAttemptFileManager:
    """AttemptFileManager 테스트."""

    def test_creates_output_dir(self, tmp_path: Path) -> None:
        """진입 시 출력 디렉토리 생성."""
        output_dir = tmp_path / "a" / "b"

        with AttemptFileManager(output_dir, "movie"):
            assert output_dir.is_dir()

    def test_new_path_unique(self, tmp_path: Path) -> None:
        """시도마다 다른 경로, stem_8자리hex.ext 형식."""
        with AttemptFileManager(tmp_path, "movie", ".png") as files:
            first = files.new_path()
            second = files.new_path()

        assert first != second
        assert re.fullmatch(r"movie_[0-9a-f]{8}\.png", first.name)
        assert first.parent == tmp_path

    def test_discard_removes_file(self, tmp_path: Path) -> None:
        """실패 시도 파일 즉시 삭제."""
        with AttemptFileManager(tmp_path, "movie") as files:
            path = files.new_path()
            path.write_bytes(b"partial")
            files.discard(path)

            assert not path.exists()
            assert files.pending == []

    def test_discard_missing_file(self, tmp_path: Path) -> None:
        """생성되지 않은 파일도 오류 없이 처리."""
        with AttemptFileManager(tmp_path, "movie") as files:
            files.discard(files.new_path())

            assert files.pending == []

    def test_released_file_survives_exit(self, tmp_path: Path) -> None:
        """호출자에게 넘긴 파일은 종료 후에도 유지."""
        with AttemptFileManager(tmp_path, "movie") as files:
            kept = files.release(files.new_path())
            kept.write_bytes(b"image")
            leftover = files.new_path()
            leftover.write_bytes(b"partial")

        assert kept.exists()
        assert not leftover.exists()

    def test_cleanup_on_exception(self, tmp_path: Path) -> None:
        """예외로 빠져나가도 미처리 파일 정리."""
        with pytest.raises(RuntimeError):
            with AttemptFileManager(tmp_path, "movie") as files:
                path = files.new_path()
                path.write_bytes(b"partial")
                raise RuntimeError("cancelled")

        assert not path.exists()
        assert list(tmp_path.iterdir()) == []
