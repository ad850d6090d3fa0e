"""검은 화면 구간 캐시.

(경로, 파일 크기, 수정 시각) 을 키로 사용하므로 파일이 바뀌면 자동으로 무효화된다.
항목은 생성 후 24시간이 지나면 없는 것으로 취급하고, 쓰기 시점에 함께 정리한다.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from posterframe.models.media import BlackInterval

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class CacheKey:
    """캐시 키.

    Attributes:
        path: 절대 경로 문자열
        size_bytes: 파일 크기
        mtime_ns: 수정 시각 (나노초)
    """

    path: str
    size_bytes: int
    mtime_ns: int

    @classmethod
    def from_path(cls, path: Path) -> CacheKey | None:
        """파일 상태로 키를 만든다. stat 실패 시 None."""
        try:
            stat = path.stat()
        except OSError as e:
            logger.debug("Cannot stat %s for cache key: %s", path, e)
            return None
        return cls(str(path.resolve()), stat.st_size, stat.st_mtime_ns)


@dataclass(frozen=True)
class BlackIntervalCacheEntry:
    """캐시 항목."""

    intervals: tuple[BlackInterval, ...]
    created_at: float


class BlackIntervalCache:
    """TTL 이 있는 스레드 안전 구간 캐시.

    잠금은 조회·삽입 동안만 잡는다. 파일 stat 은 :meth:`CacheKey.from_path` 에서
    잠금 밖에서 수행한다.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        초기화.

        Args:
            ttl_seconds: 항목 유효 시간 (초)
            clock: 현재 시각 함수 (테스트에서 교체)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[CacheKey, BlackIntervalCacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_expired(self, entry: BlackIntervalCacheEntry, now: float) -> bool:
        return now - entry.created_at >= self.ttl_seconds

    def get(self, key: CacheKey) -> tuple[BlackInterval, ...] | None:
        """유효한 항목이 있으면 구간 목록을 반환한다. 만료 항목은 제거한다."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, now):
                del self._entries[key]
                return None
            return entry.intervals

    def put(self, key: CacheKey, intervals: Iterable[BlackInterval]) -> None:
        """구간 목록 저장. 저장하면서 만료 항목을 정리한다."""
        now = self._clock()
        entry = BlackIntervalCacheEntry(tuple(intervals), now)
        with self._lock:
            evicted = self._evict_locked(now)
            self._entries[key] = entry
        if evicted:
            logger.debug("Evicted %d expired black interval cache entries", evicted)

    def evict_expired(self) -> int:
        """만료 항목 정리. 제거한 개수를 반환한다."""
        now = self._clock()
        with self._lock:
            return self._evict_locked(now)

    def clear(self) -> None:
        """전체 비우기."""
        with self._lock:
            self._entries.clear()

    def _evict_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)
