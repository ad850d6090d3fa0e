"""포스터 프레임 추출 도메인 모델.

추출 파이프라인 전 구간에서 공유하는 불변(frozen) 데이터클래스와 열거형 정의.

클래스:
    - :class:`HdrClass`: HDR / Dolby Vision 분류
    - :class:`MediaProfile`: ffprobe로 얻은 코덱·색 공간·길이 정보
    - :class:`BlackInterval`: blackdetect로 감지한 검은 화면 구간
    - :class:`HardwareBackend`: 하드웨어 가속 백엔드 종류
    - :class:`HardwareDecision`: 파일별 하드웨어/소프트웨어 경로 결정
    - :class:`ExtractionAttempt`: 추출 시도 1회의 결과
    - :class:`ExtractionResult`: 추출 요청 1건의 최종 결과
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class HdrClass(Enum):
    """영상의 다이나믹 레인지 분류."""

    SDR = "sdr"
    HDR10 = "hdr10"
    HDR10_PLUS = "hdr10plus"
    HLG = "hlg"
    DOVI = "dovi"
    DOVI_WITH_HDR10 = "dovi_hdr10"
    DOVI_WITH_HDR10_PLUS = "dovi_hdr10plus"
    DOVI_WITH_HLG = "dovi_hlg"
    DOVI_WITH_EL = "dovi_el"
    DOVI_WITH_EL_HDR10_PLUS = "dovi_el_hdr10plus"
    DOVI_WITH_SDR = "dovi_sdr"
    DOVI_INVALID = "dovi_invalid"
    UNKNOWN = "unknown"

    @property
    def is_dolby_vision(self) -> bool:
        """Dolby Vision 계열 여부."""
        return self.value.startswith("dovi")

    @property
    def is_hlg(self) -> bool:
        """HLG 전달 함수를 쓰는 분류인지 여부."""
        return self in (HdrClass.HLG, HdrClass.DOVI_WITH_HLG)


@dataclass(frozen=True)
class MediaProfile:
    """ffprobe로 감지한 추출 대상 영상 정보.

    추출 요청마다 한 번 만들어지고 이후 변경되지 않는다.
    분류를 보정할 때는 :func:`dataclasses.replace` 로 새 객체를 만든다.

    Attributes:
        path: 원본 영상 경로
        duration_seconds: 영상 길이 (초). 조회 실패 시 None
        video_codec: 첫 번째 비디오 스트림 코덱 (``h264``, ``hevc`` 등)
        color_space: 색 공간 (``bt709``, ``bt2020nc`` 등, 미상이면 빈 문자열)
        color_transfer: 전달 특성 (``smpte2084``, ``arib-std-b67`` 등)
        color_primaries: 색 영역 (``bt2020`` 등)
        pixel_format: 픽셀 포맷 (``yuv420p10le`` 등)
        bit_depth: 샘플 비트 깊이
        hdr_class: HDR 분류
    """

    path: Path
    duration_seconds: float | None = None
    video_codec: str = "unknown"
    color_space: str = ""
    color_transfer: str = ""
    color_primaries: str = ""
    pixel_format: str = ""
    bit_depth: int = 8
    hdr_class: HdrClass = HdrClass.UNKNOWN

    @property
    def looks_like_hdr(self) -> bool:
        """10비트 이상이거나 BT.2020/BT.2100 색 공간이면 True."""
        if self.bit_depth >= 10:
            return True
        color_info = f"{self.color_space} {self.color_primaries}".lower()
        return "2020" in color_info or "2100" in color_info


@dataclass(frozen=True)
class BlackInterval:
    """검은 화면 구간.

    Attributes:
        start: 시작 시각 (초)
        end: 종료 시각 (초)
        duration: 길이 (초)
    """

    start: float
    end: float
    duration: float

    def __post_init__(self) -> None:
        """검증."""
        if self.start < 0:
            raise ValueError(f"start must be >= 0: {self.start}")
        if self.end <= self.start:
            raise ValueError(f"end must be greater than start: {self.start} >= {self.end}")

    def contains(self, timestamp: float) -> bool:
        """타임스탬프가 구간 안(경계 포함)에 있는지 확인."""
        return self.start <= timestamp <= self.end


class HardwareBackend(Enum):
    """하드웨어 가속 백엔드."""

    NONE = "none"
    VAAPI = "vaapi"
    QSV = "qsv"
    NVENC = "nvenc"
    AMF = "amf"
    VIDEOTOOLBOX = "videotoolbox"

    @classmethod
    def from_name(cls, name: str | None) -> HardwareBackend:
        """호스트 설정 문자열을 백엔드로 변환. 알 수 없는 값은 NONE."""
        if not name:
            return cls.NONE
        normalized = name.strip().lower()
        aliases = {"cuda": "nvenc", "nvdec": "nvenc", "vt": "videotoolbox"}
        normalized = aliases.get(normalized, normalized)
        for backend in cls:
            if backend.value == normalized:
                return backend
        return cls.NONE


@dataclass(frozen=True)
class HardwareDecision:
    """파일 단위 디코딩 경로 결정.

    Attributes:
        backend: 선택된 백엔드 (소프트웨어면 NONE)
        init_args: ``-init_hw_device`` 계열 인자
        accel_args: ``-hwaccel`` 계열 인자
        supports_codec: 백엔드가 해당 코덱을 하드웨어로 디코딩할 수 있는지
        reason: 소프트웨어 경로로 떨어진 이유 (로그용)
    """

    backend: HardwareBackend = HardwareBackend.NONE
    init_args: tuple[str, ...] = ()
    accel_args: tuple[str, ...] = ()
    supports_codec: bool = False
    reason: str = ""

    @property
    def use_hardware(self) -> bool:
        """하드웨어 경로 사용 여부."""
        return self.backend is not HardwareBackend.NONE and self.supports_codec


SOFTWARE_DECISION = HardwareDecision()


@dataclass(frozen=True)
class ExtractionAttempt:
    """추출 시도 1회의 결과.

    실패한 시도의 출력 파일은 결과를 만들기 전에 삭제된다. 밝기 검사에서만 떨어진
    시도(``too_dark``)는 가장 밝은 프레임 후보로 남을 수 있다.

    Attributes:
        output_path: 시도 출력 경로
        timestamp: 추출 시점 (초)
        used_hardware: 하드웨어 디코딩 경로 여부
        success: 프레임이 채택 조건을 모두 통과했는지
        returncode: ffmpeg 종료 코드
        diagnostics: ffmpeg stderr 끝부분
        brightness: 평균 휘도 (0.0-1.0, 측정하지 않았으면 None)
        too_dark: ffmpeg 은 성공했지만 밝기 기준 미달
    """

    output_path: Path
    timestamp: float
    used_hardware: bool
    success: bool
    returncode: int
    diagnostics: str = ""
    brightness: float | None = None
    too_dark: bool = False


@dataclass(frozen=True)
class ExtractionResult:
    """추출 요청 1건의 최종 결과.

    Attributes:
        source: 원본 영상 경로
        path: 추출된 이미지 경로 (실패 시 None). 소유권은 호출자에게 있다.
        attempts: 시도 기록 (하드웨어 실패 후 소프트웨어 재시도 포함)
    """

    source: Path
    path: Path | None = None
    attempts: tuple[ExtractionAttempt, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        """추출 성공 여부."""
        return self.path is not None

    @property
    def chosen(self) -> ExtractionAttempt | None:
        """결과 이미지를 만든 시도."""
        if self.path is None:
            return None
        for attempt in reversed(self.attempts):
            if attempt.output_path == self.path:
                return attempt
        return None

    @property
    def used_hardware(self) -> bool:
        """채택된 시도가 하드웨어 경로였는지 여부."""
        chosen = self.chosen
        return chosen is not None and chosen.used_hardware

    @property
    def timestamp(self) -> float | None:
        """채택된 시도의 타임스탬프."""
        chosen = self.chosen
        return chosen.timestamp if chosen is not None else None
