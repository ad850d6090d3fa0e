"""TOML 설정 파일 및 환경변수 기본값 관리.

``~/.posterframe/config.toml`` 에서 사용자 설정을 로드하고,
환경변수 Shim 패턴으로 설정값을 주입한다.

우선순위::

    CLI 옵션 > 환경변수 > config.toml > 기본값

환경변수에서 개별 기본값을 읽어오는 헬퍼 함수
(``get_default_max_retries``, ``get_default_hwaccel`` 등)도 이 모듈에서 제공한다.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# 환경변수 매핑
ENV_OUTPUT_DIR = "POSTERFRAME_OUTPUT_DIR"
ENV_FFMPEG = "POSTERFRAME_FFMPEG"
ENV_FFPROBE = "POSTERFRAME_FFPROBE"
ENV_MAX_CONCURRENCY = "POSTERFRAME_MAX_CONCURRENCY"
ENV_MAX_RETRIES = "POSTERFRAME_MAX_RETRIES"
ENV_OUTPUT_FORMAT = "POSTERFRAME_OUTPUT_FORMAT"
ENV_QUALITY = "POSTERFRAME_QUALITY"
ENV_TIMEOUT = "POSTERFRAME_TIMEOUT"
ENV_MIN_BRIGHTNESS = "POSTERFRAME_MIN_BRIGHTNESS"
ENV_BLACKDETECT = "POSTERFRAME_BLACKDETECT"
ENV_BLACK_PIXEL_THRESHOLD = "POSTERFRAME_BLACK_PIXEL_THRESHOLD"
ENV_BLACK_MIN_DURATION = "POSTERFRAME_BLACK_MIN_DURATION"
ENV_BLACKDETECT_PARALLEL = "POSTERFRAME_BLACKDETECT_PARALLEL"
ENV_TONEMAP = "POSTERFRAME_TONEMAP"
ENV_TONEMAP_ALGORITHM = "POSTERFRAME_TONEMAP_ALGORITHM"
ENV_TONEMAP_PEAK = "POSTERFRAME_TONEMAP_PEAK"
ENV_DOVI_RPU = "POSTERFRAME_DOVI_RPU"
ENV_HWACCEL = "POSTERFRAME_HWACCEL"
ENV_HW_CODECS = "POSTERFRAME_HW_CODECS"
ENV_VPP_TONEMAP = "POSTERFRAME_VPP_TONEMAP"
ENV_VT_TONEMAP = "POSTERFRAME_VT_TONEMAP"
ENV_HW_VALIDATE = "POSTERFRAME_HW_VALIDATE"

OUTPUT_FORMATS = ("jpg", "png", "webp")
TONEMAP_ALGORITHMS = ("hable", "reinhard", "mobius", "bt2390")
HWACCEL_TYPES = ("none", "vaapi", "qsv", "nvenc", "amf", "videotoolbox")
DEFAULT_MIN_BRIGHTNESS = 0.05


@dataclass(frozen=True)
class GeneralConfig:
    """``config.toml`` 의 ``[general]`` 섹션.

    모든 필드가 ``None`` 이면 해당 옵션은 환경변수 또는 기본값을 사용한다.
    """

    output_dir: str | None = None
    ffmpeg_path: str | None = None
    ffprobe_path: str | None = None
    max_concurrency: int | None = None


@dataclass(frozen=True)
class ExtractionConfig:
    """``config.toml`` 의 ``[extraction]`` 섹션."""

    max_retries: int | None = None
    output_format: str | None = None  # jpg/png/webp
    quality: int | None = None  # 1-31
    timeout: float | None = None  # 시도별 타임아웃 (초)
    min_brightness: float | None = None  # 0.0-1.0, 0이면 밝기 검사 안 함


@dataclass(frozen=True)
class BlackDetectConfig:
    """``config.toml`` 의 ``[blackdetect]`` 섹션."""

    enabled: bool | None = None
    pixel_threshold: float | None = None
    min_duration: float | None = None
    parallel: bool | None = None


@dataclass(frozen=True)
class ToneMapConfig:
    """``config.toml`` 의 ``[tonemap]`` 섹션."""

    enabled: bool | None = None
    algorithm: str | None = None
    peak: float | None = None
    dolby_vision_rpu: bool | None = None


@dataclass(frozen=True)
class HardwareConfig:
    """``config.toml`` 의 ``[hardware]`` 섹션.

    호스트에서 사용 가능한 가속기와 톤 매핑 지원 여부를 기술한다.
    """

    accel_type: str | None = None
    decoding_codecs: list[str] = field(default_factory=list)
    vpp_tonemapping: bool | None = None
    videotoolbox_tonemapping: bool | None = None
    validate: bool | None = None


@dataclass(frozen=True)
class AppConfig:
    """애플리케이션 전체 설정."""

    general: GeneralConfig = field(default_factory=GeneralConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    blackdetect: BlackDetectConfig = field(default_factory=BlackDetectConfig)
    tonemap: ToneMapConfig = field(default_factory=ToneMapConfig)
    hardware: HardwareConfig = field(default_factory=HardwareConfig)


def _warn_type(field_name: str, expected: str, value: object) -> None:
    """타입 불일치 경고 출력."""
    logger.warning(
        "config: %s 타입 오류 (expected %s, got %s)",
        field_name,
        expected,
        type(value).__name__,
    )


def _parse_str(data: dict[str, object], key: str, section: str) -> str | None:
    """TOML dict에서 문자열 필드를 안전하게 파싱한다."""
    raw = data.get(key)
    if isinstance(raw, str):
        return raw
    if raw is not None:
        _warn_type(f"{section}.{key}", "str", raw)
    return None


def _parse_bool(data: dict[str, object], key: str, section: str) -> bool | None:
    """TOML dict에서 bool 필드를 안전하게 파싱한다."""
    raw = data.get(key)
    if isinstance(raw, bool):
        return raw
    if raw is not None:
        _warn_type(f"{section}.{key}", "bool", raw)
    return None


def _parse_int(data: dict[str, object], key: str, section: str) -> int | None:
    """TOML dict에서 정수 필드를 안전하게 파싱한다 (bool 제외)."""
    raw = data.get(key)
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if raw is not None:
        _warn_type(f"{section}.{key}", "int", raw)
    return None


def _parse_positive_float(data: dict[str, object], key: str, section: str) -> float | None:
    """TOML dict에서 양수 실수 필드를 파싱한다 (int도 허용)."""
    raw = data.get(key)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        if raw > 0:
            return float(raw)
        logger.warning("config: %s.%s 값 오류: %r", section, key, raw)
        return None
    if raw is not None:
        _warn_type(f"{section}.{key}", "float", raw)
    return None


def _parse_unit_float(data: dict[str, object], key: str, section: str) -> float | None:
    """TOML dict에서 0.0~1.0 범위 실수 필드를 파싱한다 (int도 허용)."""
    raw = data.get(key)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        if 0 <= raw <= 1:
            return float(raw)
        logger.warning("config: %s.%s 범위 초과: %r (0-1)", section, key, raw)
        return None
    if raw is not None:
        _warn_type(f"{section}.{key}", "float", raw)
    return None


def _parse_choice(
    data: dict[str, object],
    key: str,
    section: str,
    choices: tuple[str, ...],
) -> str | None:
    """허용값 목록 안의 문자열만 받아들인다 (대소문자 무시)."""
    value = _parse_str(data, key, section)
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in choices:
        logger.warning("config: %s.%s 값 오류: %r", section, key, value)
        return None
    return normalized


def get_default_config_path() -> Path:
    """기본 설정 파일 경로 반환."""
    return Path.home() / ".posterframe" / "config.toml"


def _parse_general(data: dict[str, object]) -> GeneralConfig:
    """[general] 섹션 파싱. 타입 오류 시 해당 필드 무시."""
    section = "general"

    max_concurrency = _parse_int(data, "max_concurrency", section)
    if max_concurrency is not None and max_concurrency < 1:
        logger.warning("config: general.max_concurrency 값 오류: %d", max_concurrency)
        max_concurrency = None

    return GeneralConfig(
        output_dir=_parse_str(data, "output_dir", section),
        ffmpeg_path=_parse_str(data, "ffmpeg_path", section),
        ffprobe_path=_parse_str(data, "ffprobe_path", section),
        max_concurrency=max_concurrency,
    )


def _parse_extraction(data: dict[str, object]) -> ExtractionConfig:
    """[extraction] 섹션 파싱."""
    section = "extraction"

    max_retries = _parse_int(data, "max_retries", section)
    if max_retries is not None and max_retries < 1:
        logger.warning("config: extraction.max_retries 값 오류: %d", max_retries)
        max_retries = None

    # quality: JPEG -q:v 범위 검증
    quality = _parse_int(data, "quality", section)
    if quality is not None and not (1 <= quality <= 31):
        logger.warning("config: extraction.quality 범위 초과: %d (1-31)", quality)
        quality = None

    return ExtractionConfig(
        max_retries=max_retries,
        output_format=_parse_choice(data, "output_format", section, OUTPUT_FORMATS),
        quality=quality,
        timeout=_parse_positive_float(data, "timeout", section),
        min_brightness=_parse_unit_float(data, "min_brightness", section),
    )


def _parse_blackdetect(data: dict[str, object]) -> BlackDetectConfig:
    """[blackdetect] 섹션 파싱."""
    section = "blackdetect"

    # pixel_threshold: 0 초과 1 이하
    pixel_threshold = _parse_positive_float(data, "pixel_threshold", section)
    if pixel_threshold is not None and pixel_threshold > 1:
        logger.warning("config: blackdetect.pixel_threshold 범위 초과: %r (0-1)", pixel_threshold)
        pixel_threshold = None

    return BlackDetectConfig(
        enabled=_parse_bool(data, "enabled", section),
        pixel_threshold=pixel_threshold,
        min_duration=_parse_positive_float(data, "min_duration", section),
        parallel=_parse_bool(data, "parallel", section),
    )


def _parse_tonemap(data: dict[str, object]) -> ToneMapConfig:
    """[tonemap] 섹션 파싱."""
    section = "tonemap"
    return ToneMapConfig(
        enabled=_parse_bool(data, "enabled", section),
        algorithm=_parse_choice(data, "algorithm", section, TONEMAP_ALGORITHMS),
        peak=_parse_positive_float(data, "peak", section),
        dolby_vision_rpu=_parse_bool(data, "dolby_vision_rpu", section),
    )


def _parse_hardware(data: dict[str, object]) -> HardwareConfig:
    """[hardware] 섹션 파싱."""
    section = "hardware"

    # decoding_codecs: list[str] 또는 단일 str 허용
    codecs: list[str] = []
    raw_codecs = data.get("decoding_codecs")
    if isinstance(raw_codecs, list):
        codecs = [item for item in raw_codecs if isinstance(item, str)]
        skipped = len(raw_codecs) - len(codecs)
        if skipped > 0:
            logger.warning("config: hardware.decoding_codecs에 비문자열 항목 %d개 무시됨", skipped)
    elif isinstance(raw_codecs, str):
        codecs = [raw_codecs]
    elif raw_codecs is not None:
        _warn_type(f"{section}.decoding_codecs", "list|str", raw_codecs)

    return HardwareConfig(
        accel_type=_parse_choice(data, "accel_type", section, HWACCEL_TYPES),
        decoding_codecs=codecs,
        vpp_tonemapping=_parse_bool(data, "vpp_tonemapping", section),
        videotoolbox_tonemapping=_parse_bool(data, "videotoolbox_tonemapping", section),
        validate=_parse_bool(data, "validate", section),
    )


_SECTION_PARSERS = {
    "general": (_parse_general, GeneralConfig),
    "extraction": (_parse_extraction, ExtractionConfig),
    "blackdetect": (_parse_blackdetect, BlackDetectConfig),
    "tonemap": (_parse_tonemap, ToneMapConfig),
    "hardware": (_parse_hardware, HardwareConfig),
}


def load_config(path: Path | None = None) -> AppConfig:
    """
    TOML 설정 파일 로드.

    Args:
        path: 설정 파일 경로 (None이면 기본 경로 사용)

    Returns:
        AppConfig (파일 없음/에러 시 빈 AppConfig)
    """
    config_path = path or get_default_config_path()

    if not config_path.is_file():
        return AppConfig()

    try:
        with config_path.open("rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        logger.warning(f"config: TOML 문법 오류 ({config_path}): {e}")
        return AppConfig()
    except OSError as e:
        logger.warning(f"config: 파일 읽기 실패 ({config_path}): {e}")
        return AppConfig()

    sections: dict[str, object] = {}
    for name, (parser, default_factory) in _SECTION_PARSERS.items():
        section_data = raw.get(name, {})
        if isinstance(section_data, dict):
            sections[name] = parser(section_data)
        else:
            if section_data:
                logger.warning(
                    "config: [%s] 섹션이 테이블이 아닙니다 (got %s)",
                    name,
                    type(section_data).__name__,
                )
            sections[name] = default_factory()

    return AppConfig(**sections)  # type: ignore[arg-type]


def _bool_str(value: bool) -> str:
    return str(value).lower()


def apply_config_to_env(config: AppConfig) -> None:
    """
    설정값을 환경변수에 주입 (미설정인 경우만).

    이미 설정된 환경변수는 보존된다 (환경변수 > config).
    """
    general = config.general
    extraction = config.extraction
    blackdetect = config.blackdetect
    tonemap = config.tonemap
    hardware = config.hardware

    mappings: list[tuple[str, str | None]] = [
        (ENV_OUTPUT_DIR, general.output_dir),
        (ENV_FFMPEG, general.ffmpeg_path),
        (ENV_FFPROBE, general.ffprobe_path),
        (ENV_OUTPUT_FORMAT, extraction.output_format),
        (ENV_TONEMAP_ALGORITHM, tonemap.algorithm),
        (ENV_HWACCEL, hardware.accel_type),
    ]

    # 숫자 필드
    numbers: list[tuple[str, int | float | None]] = [
        (ENV_MAX_CONCURRENCY, general.max_concurrency),
        (ENV_MAX_RETRIES, extraction.max_retries),
        (ENV_QUALITY, extraction.quality),
        (ENV_TIMEOUT, extraction.timeout),
        (ENV_MIN_BRIGHTNESS, extraction.min_brightness),
        (ENV_BLACK_PIXEL_THRESHOLD, blackdetect.pixel_threshold),
        (ENV_BLACK_MIN_DURATION, blackdetect.min_duration),
        (ENV_TONEMAP_PEAK, tonemap.peak),
    ]
    mappings.extend((key, str(value)) for key, value in numbers if value is not None)

    # bool → "true"/"false"
    flags: list[tuple[str, bool | None]] = [
        (ENV_BLACKDETECT, blackdetect.enabled),
        (ENV_BLACKDETECT_PARALLEL, blackdetect.parallel),
        (ENV_TONEMAP, tonemap.enabled),
        (ENV_DOVI_RPU, tonemap.dolby_vision_rpu),
        (ENV_VPP_TONEMAP, hardware.vpp_tonemapping),
        (ENV_VT_TONEMAP, hardware.videotoolbox_tonemapping),
        (ENV_HW_VALIDATE, hardware.validate),
    ]
    mappings.extend((key, _bool_str(value)) for key, value in flags if value is not None)

    # decoding_codecs: list → CSV
    if hardware.decoding_codecs:
        mappings.append((ENV_HW_CODECS, ",".join(hardware.decoding_codecs)))

    for env_key, value in mappings:
        if value is not None and env_key not in os.environ:
            os.environ[env_key] = value


def generate_default_config() -> str:
    """주석 포함 기본 설정 파일 템플릿 반환."""
    return """\
# posterframe 설정 파일
# 위치: ~/.posterframe/config.toml
#
# 우선순위: CLI 옵션 > 환경변수 > 이 파일 > 기본값
# 주석 해제 후 값을 수정하세요.

[general]
# output_dir = "~/Pictures/posters"         # POSTERFRAME_OUTPUT_DIR (기본: 영상 디렉토리)
# ffmpeg_path = "ffmpeg"                    # POSTERFRAME_FFMPEG
# ffprobe_path = "ffprobe"                  # POSTERFRAME_FFPROBE
# max_concurrency = 3                       # 동시 ffmpeg 수 (POSTERFRAME_MAX_CONCURRENCY)

[extraction]
# max_retries = 50                          # POSTERFRAME_MAX_RETRIES
# output_format = "jpg"                     # jpg/png/webp (POSTERFRAME_OUTPUT_FORMAT)
# quality = 2                               # 1-31, 낮을수록 고품질 (POSTERFRAME_QUALITY)
# timeout = 60.0                            # 시도별 타임아웃 초 (POSTERFRAME_TIMEOUT)
# min_brightness = 0.05                     # 최소 평균 휘도, 0이면 검사 안 함 (POSTERFRAME_MIN_BRIGHTNESS)

[blackdetect]
# enabled = true                            # POSTERFRAME_BLACKDETECT
# pixel_threshold = 0.1                     # 검은 픽셀 기준 (POSTERFRAME_BLACK_PIXEL_THRESHOLD)
# min_duration = 0.1                        # 최소 구간 길이 초 (POSTERFRAME_BLACK_MIN_DURATION)
# parallel = true                           # 샘플 구간 동시 분석 (POSTERFRAME_BLACKDETECT_PARALLEL)

[tonemap]
# enabled = true                            # HDR → SDR 변환 (POSTERFRAME_TONEMAP)
# algorithm = "hable"                       # hable/reinhard/mobius/bt2390
# peak = 100.0                              # 공칭 피크 휘도 (POSTERFRAME_TONEMAP_PEAK)
# dolby_vision_rpu = true                   # 미설정 시 libplacebo 감지로 결정 (POSTERFRAME_DOVI_RPU)

[hardware]
# accel_type = "none"                       # none/vaapi/qsv/nvenc/amf/videotoolbox
# decoding_codecs = ["h264", "hevc"]        # 하드웨어 디코딩 허용 코덱 (POSTERFRAME_HW_CODECS)
# vpp_tonemapping = false                   # QSV VPP 톤 매핑 (POSTERFRAME_VPP_TONEMAP)
# videotoolbox_tonemapping = false          # VideoToolbox 톤 매핑 (POSTERFRAME_VT_TONEMAP)
# validate = true                           # 첫 사용 전 1프레임 검증 (POSTERFRAME_HW_VALIDATE)
"""


# ---------------------------------------------------------------------------
# 환경변수 기본값 헬퍼
# ---------------------------------------------------------------------------


def parse_env_bool(value: str) -> bool:
    """환경변수 문자열을 bool로 변환한다.

    '1', 'true', 'yes', 'y', 'on' (대소문자 무시)이면 True, 그 외 False.

    Args:
        value: 환경변수 원본 문자열.

    Returns:
        변환된 bool 값.
    """
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_bool(env_key: str, *, default: bool = False) -> bool:
    """환경변수에서 bool 값을 가져온다.

    Args:
        env_key: 환경변수 이름
        default: 미설정 시 기본값

    Returns:
        파싱된 bool 값.
    """
    env_val = os.environ.get(env_key)
    if env_val is None:
        return default
    return parse_env_bool(env_val)


def _get_env_int(
    env_key: str,
    default: int,
    *,
    minimum: int = 1,
    maximum: int | None = None,
) -> int:
    """환경변수에서 범위가 검증된 정수를 가져온다. 유효하지 않으면 기본값."""
    env_val = os.environ.get(env_key)
    if not env_val:
        return default
    try:
        val = int(env_val)
    except ValueError:
        logger.warning("%s=%s is not a valid number", env_key, env_val)
        return default
    if val < minimum or (maximum is not None and val > maximum):
        logger.warning("%s=%s is out of range, using %d", env_key, env_val, default)
        return default
    return val


def _get_env_float(env_key: str, default: float) -> float:
    """환경변수에서 양수 실수를 가져온다. 유효하지 않으면 기본값."""
    env_val = os.environ.get(env_key)
    if not env_val:
        return default
    try:
        val = float(env_val)
    except ValueError:
        logger.warning("%s=%s is not a valid number", env_key, env_val)
        return default
    if val <= 0:
        logger.warning("%s=%s must be > 0, using %s", env_key, env_val, default)
        return default
    return val


def _get_env_choice(env_key: str, choices: tuple[str, ...], default: str) -> str:
    env_val = os.environ.get(env_key)
    if not env_val:
        return default
    normalized = env_val.strip().lower()
    if normalized in choices:
        return normalized
    logger.warning("%s=%s is not one of %s", env_key, env_val, "/".join(choices))
    return default


def get_default_output_dir() -> Path | None:
    """환경변수에서 기본 출력 디렉토리를 가져온다.

    ``POSTERFRAME_OUTPUT_DIR`` 이 설정되어 있으면 ``~`` 를 확장한 경로를 반환한다.
    디렉토리는 추출 시 자동으로 생성된다.

    Returns:
        출력 디렉토리 경로 또는 None (영상과 같은 디렉토리 사용).
    """
    env_dir = os.environ.get(ENV_OUTPUT_DIR)
    if env_dir:
        return Path(env_dir).expanduser()
    return None


def get_default_ffmpeg_path() -> str:
    """환경변수 ``POSTERFRAME_FFMPEG`` 에서 ffmpeg 경로를 가져온다."""
    return os.environ.get(ENV_FFMPEG) or "ffmpeg"


def get_default_ffprobe_path() -> str:
    """환경변수 ``POSTERFRAME_FFPROBE`` 에서 ffprobe 경로를 가져온다."""
    return os.environ.get(ENV_FFPROBE) or "ffprobe"


def get_default_max_concurrency() -> int | None:
    """환경변수에서 동시 ffmpeg 실행 수를 가져온다. 미설정이면 None (코어 기반)."""
    if not os.environ.get(ENV_MAX_CONCURRENCY):
        return None
    value = _get_env_int(ENV_MAX_CONCURRENCY, 0)
    return value or None


def get_default_max_retries() -> int:
    """환경변수 ``POSTERFRAME_MAX_RETRIES`` 에서 재시도 한도를 가져온다 (기본 50)."""
    return _get_env_int(ENV_MAX_RETRIES, 50)


def get_default_output_format() -> str:
    """환경변수 ``POSTERFRAME_OUTPUT_FORMAT`` 에서 출력 포맷을 가져온다 (기본 jpg)."""
    return _get_env_choice(ENV_OUTPUT_FORMAT, OUTPUT_FORMATS, "jpg")


def get_default_quality() -> int:
    """환경변수 ``POSTERFRAME_QUALITY`` 에서 JPEG 품질을 가져온다 (기본 2)."""
    return _get_env_int(ENV_QUALITY, 2, maximum=31)


def get_default_timeout() -> float:
    """환경변수 ``POSTERFRAME_TIMEOUT`` 에서 시도별 타임아웃(초)을 가져온다 (기본 60)."""
    return _get_env_float(ENV_TIMEOUT, 60.0)


def get_default_min_brightness() -> float:
    """환경변수 ``POSTERFRAME_MIN_BRIGHTNESS`` 에서 최소 평균 휘도를 가져온다 (기본 0.05).

    0.0~1.0 범위만 허용하며 0이면 밝기 검사를 하지 않는다.
    """
    env_val = os.environ.get(ENV_MIN_BRIGHTNESS)
    if not env_val:
        return DEFAULT_MIN_BRIGHTNESS
    try:
        val = float(env_val)
    except ValueError:
        logger.warning("%s=%s is not a valid number", ENV_MIN_BRIGHTNESS, env_val)
        return DEFAULT_MIN_BRIGHTNESS
    if not 0 <= val <= 1:
        logger.warning(
            "%s=%s is out of range, using %s", ENV_MIN_BRIGHTNESS, env_val, DEFAULT_MIN_BRIGHTNESS
        )
        return DEFAULT_MIN_BRIGHTNESS
    return val


def get_default_blackdetect() -> bool:
    """환경변수 ``POSTERFRAME_BLACKDETECT`` 에서 검은 화면 감지 여부를 가져온다."""
    return _get_env_bool(ENV_BLACKDETECT, default=True)


def get_default_black_pixel_threshold() -> float:
    """환경변수 ``POSTERFRAME_BLACK_PIXEL_THRESHOLD`` (기본 0.1)."""
    return _get_env_float(ENV_BLACK_PIXEL_THRESHOLD, 0.1)


def get_default_black_min_duration() -> float:
    """환경변수 ``POSTERFRAME_BLACK_MIN_DURATION`` (기본 0.1초)."""
    return _get_env_float(ENV_BLACK_MIN_DURATION, 0.1)


def get_default_blackdetect_parallel() -> bool:
    """환경변수 ``POSTERFRAME_BLACKDETECT_PARALLEL`` (기본 True)."""
    return _get_env_bool(ENV_BLACKDETECT_PARALLEL, default=True)


def get_default_tonemap() -> bool:
    """환경변수 ``POSTERFRAME_TONEMAP`` 에서 톤 매핑 활성화 여부를 가져온다."""
    return _get_env_bool(ENV_TONEMAP, default=True)


def get_default_tonemap_algorithm() -> str:
    """환경변수 ``POSTERFRAME_TONEMAP_ALGORITHM`` (기본 hable)."""
    return _get_env_choice(ENV_TONEMAP_ALGORITHM, TONEMAP_ALGORITHMS, "hable")


def get_default_tonemap_peak() -> float:
    """환경변수 ``POSTERFRAME_TONEMAP_PEAK`` (기본 100)."""
    return _get_env_float(ENV_TONEMAP_PEAK, 100.0)


def get_default_dolby_vision_rpu() -> bool | None:
    """환경변수 ``POSTERFRAME_DOVI_RPU``.

    Returns:
        설정값. 미설정이면 None (ffmpeg 빌드의 libplacebo 감지 결과를 따른다).
    """
    if not os.environ.get(ENV_DOVI_RPU):
        return None
    return _get_env_bool(ENV_DOVI_RPU)


def get_default_hwaccel() -> str | None:
    """환경변수 ``POSTERFRAME_HWACCEL`` 에서 가속기 종류를 가져온다.

    Returns:
        가속기 이름 또는 None (소프트웨어).
    """
    value = _get_env_choice(ENV_HWACCEL, HWACCEL_TYPES, "none")
    return None if value == "none" else value


def get_default_hw_codecs() -> tuple[str, ...]:
    """환경변수 ``POSTERFRAME_HW_CODECS`` (CSV) 에서 하드웨어 디코딩 코덱을 가져온다."""
    env_val = os.environ.get(ENV_HW_CODECS, "")
    return tuple(codec.strip().lower() for codec in env_val.split(",") if codec.strip())


def get_default_vpp_tonemapping() -> bool:
    """환경변수 ``POSTERFRAME_VPP_TONEMAP`` (기본 False)."""
    return _get_env_bool(ENV_VPP_TONEMAP)


def get_default_videotoolbox_tonemapping() -> bool:
    """환경변수 ``POSTERFRAME_VT_TONEMAP`` (기본 False)."""
    return _get_env_bool(ENV_VT_TONEMAP)


def get_default_hw_validate() -> bool:
    """환경변수 ``POSTERFRAME_HW_VALIDATE`` (기본 True)."""
    return _get_env_bool(ENV_HW_VALIDATE, default=True)
