"""HDR → SDR 톤 매핑 필터 체인 구성.

HDR 분류와 디코딩 백엔드 조합에 맞는 필터 체인을 구조화된 형태
(:class:`FilterStage` 목록)로 만든다. ffmpeg 문자열은 명령을 조립하는
시점에만 :meth:`FilterChain.render` 로 생성한다.

전략 표 (백엔드 × 방식):
    - 소프트웨어: zscale 선형광 변환 → tonemap → BT.709
      (bt2390 은 tonemapx 또는 libplacebo 가 있을 때만, 없으면 hable)
    - VAAPI / QSV: ``tonemap_vaapi`` (VPP)
    - NVENC: ``tonemap_cuda``
    - AMF: ``tonemap_opencl``
    - VideoToolbox: ``scale_vt``
    - Dolby Vision: ffmpeg 빌드에 libplacebo 가 있으면 동적 메타데이터 매핑
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from posterframe.ffmpeg.filters import (
    LIBPLACEBO,
    NO_FILTER_CAPABILITIES,
    TONEMAPX,
    FilterCapabilities,
)
from posterframe.models.media import HardwareBackend, HdrClass, MediaProfile

logger = logging.getLogger(__name__)

TRANSFER_PQ = "smpte2084"
TRANSFER_HLG = "arib-std-b67"

DEFAULT_ALGORITHM = "hable"
DEFAULT_PEAK = 100.0
ALGORITHMS = ("hable", "reinhard", "mobius", "bt2390")

# libplacebo 는 tonemapping 이름 표기가 다르다
_LIBPLACEBO_ALGORITHMS = {
    "hable": "hable",
    "reinhard": "reinhard",
    "mobius": "mobius",
    "bt2390": "bt.2390",
}

# 필터별로 받는 tonemap 값. 표에 없는 필터는 톤 커브를 받지 않는다
_BASIC_CURVES = frozenset({"hable", "reinhard", "mobius"})
_FILTER_ALGORITHMS: dict[str, frozenset[str]] = {
    "tonemap": _BASIC_CURVES,
    "tonemap_opencl": _BASIC_CURVES,
    "tonemap_cuda": frozenset(ALGORITHMS),
    TONEMAPX: frozenset(ALGORITHMS),
    LIBPLACEBO: frozenset(ALGORITHMS),
}

TONE_MAPPING_REQUIRED: dict[HdrClass, bool] = {
    HdrClass.SDR: False,
    HdrClass.UNKNOWN: False,
    HdrClass.HDR10: True,
    HdrClass.HDR10_PLUS: True,
    HdrClass.HLG: True,
    HdrClass.DOVI: True,
    HdrClass.DOVI_WITH_HDR10: True,
    HdrClass.DOVI_WITH_HDR10_PLUS: True,
    HdrClass.DOVI_WITH_HLG: True,
    HdrClass.DOVI_WITH_EL: True,
    HdrClass.DOVI_WITH_EL_HDR10_PLUS: True,
    HdrClass.DOVI_WITH_SDR: False,
    HdrClass.DOVI_INVALID: True,
}

# 디코딩 결과가 GPU 메모리에 남는 백엔드 (hwaccel_output_format 지정)
_DEVICE_FRAME_BACKENDS = frozenset(
    {
        HardwareBackend.VAAPI,
        HardwareBackend.QSV,
        HardwareBackend.NVENC,
        HardwareBackend.VIDEOTOOLBOX,
    }
)


@dataclass(frozen=True)
class FilterStage:
    """필터 그래프의 단일 필터.

    Attributes:
        name: ffmpeg 필터 이름
        params: 순서가 유지되는 ``(key, value)`` 목록
    """

    name: str
    params: tuple[tuple[str, str], ...] = ()

    def param(self, key: str) -> str | None:
        """파라미터 값 조회."""
        for name, value in self.params:
            if name == key:
                return value
        return None

    def render(self) -> str:
        """ffmpeg 필터 문법으로 변환."""
        if not self.params:
            return self.name
        joined = ":".join(f"{key}={value}" for key, value in self.params)
        return f"{self.name}={joined}"


def _stage(name: str, **params: object) -> FilterStage:
    """키워드 인자 순서대로 파라미터를 담은 FilterStage 생성."""
    return FilterStage(name, tuple((key, _format_value(value)) for key, value in params.items()))


def _format_value(value: object) -> str:
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


@dataclass(frozen=True)
class FilterChain:
    """순서가 있는 필터 목록 (``-vf`` 한 개에 해당)."""

    stages: tuple[FilterStage, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.stages)

    def __add__(self, other: FilterChain) -> FilterChain:
        return FilterChain(self.stages + other.stages)

    @property
    def names(self) -> list[str]:
        """필터 이름 목록."""
        return [stage.name for stage in self.stages]

    def has(self, name: str) -> bool:
        """해당 이름의 필터 포함 여부."""
        return name in self.names

    def render(self) -> str:
        """쉼표로 연결된 필터 그래프 문자열."""
        return ",".join(stage.render() for stage in self.stages)


@dataclass(frozen=True)
class ToneMapOptions:
    """톤 매핑 옵션.

    Attributes:
        enabled: False면 HDR이어도 변환하지 않는다
        algorithm: 톤 커브 (hable / reinhard / mobius / bt2390)
        peak: 공칭 피크 휘도 (nits, zscale ``npl``)
        dolby_vision_rpu: libplacebo 로 Dolby Vision RPU 를 적용할지.
            None이면 ffmpeg 빌드에서 libplacebo 사용 가능 여부로 결정한다.
    """

    enabled: bool = True
    algorithm: str = DEFAULT_ALGORITHM
    peak: float = DEFAULT_PEAK
    dolby_vision_rpu: bool | None = None


@dataclass(frozen=True)
class ToneMapPlan:
    """톤 매핑 계획.

    ``chain`` 이 비어 있으면 톤 매핑이 필요 없다는 뜻이다.

    Attributes:
        chain: 톤 매핑 필터 체인
        transfer: 입력 전달 함수 (smpte2084 / arib-std-b67)
        algorithm: 적용한 톤 커브
        strategy: 선택된 전략 이름 (로그·테스트용)
    """

    chain: FilterChain = field(default_factory=FilterChain)
    transfer: str | None = None
    algorithm: str | None = None
    strategy: str = "none"

    @property
    def required(self) -> bool:
        """톤 매핑 필터가 포함되었는지 여부."""
        return bool(self.chain)

    def render(self) -> str:
        """ffmpeg 필터 문자열."""
        return self.chain.render()


NO_TONE_MAPPING = ToneMapPlan()


class ToneMapKind(Enum):
    """톤 매핑 방식."""

    STATIC = "static"
    DYNAMIC = "dynamic"


def requires_tone_mapping(hdr_class: HdrClass) -> bool:
    """HDR 분류별 톤 매핑 필요 여부.

    Args:
        hdr_class: HDR 분류

    Returns:
        톤 매핑이 필요하면 True
    """
    return TONE_MAPPING_REQUIRED[hdr_class]


def infer_hdr_class(profile: MediaProfile) -> HdrClass:
    """분류가 불명확한 영상을 보정한다.

    UNKNOWN 이지만 10비트 이상이거나 BT.2020/BT.2100 색 공간이면
    HDR10 으로 간주한다. 그 외에는 원래 분류를 그대로 돌려준다.
    """
    if profile.hdr_class is HdrClass.UNKNOWN and profile.looks_like_hdr:
        logger.debug("Inferring HDR10 for %s (bit depth %d)", profile.path, profile.bit_depth)
        return HdrClass.HDR10
    return profile.hdr_class


def transfer_for(hdr_class: HdrClass) -> str:
    """입력 전달 함수 이름."""
    return TRANSFER_HLG if hdr_class.is_hlg else TRANSFER_PQ


def normalize_algorithm(name: str | None) -> str:
    """톤 커브 이름 검증. 알 수 없는 값은 hable로 대체."""
    if not name:
        return DEFAULT_ALGORITHM
    normalized = name.strip().lower().replace(".", "")
    if normalized in ALGORITHMS:
        return normalized
    logger.warning("Unknown tone mapping algorithm %r, using %s", name, DEFAULT_ALGORITHM)
    return DEFAULT_ALGORITHM


def algorithm_for(filter_name: str, algorithm: str) -> str:
    """필터가 받는 톤 커브로 맞춘다.

    stock ``tonemap`` / ``tonemap_opencl`` 은 bt2390 을 모르므로 hable 로 대체한다.

    Args:
        filter_name: 톤 커브를 받는 ffmpeg 필터 이름
        algorithm: 정규화된 톤 커브

    Returns:
        해당 필터에 넘길 수 있는 톤 커브
    """
    accepted = _FILTER_ALGORITHMS.get(filter_name)
    if accepted is None or algorithm in accepted:
        return algorithm
    logger.warning(
        "%s does not support tone mapping curve %s, using %s",
        filter_name,
        algorithm,
        DEFAULT_ALGORITHM,
    )
    return DEFAULT_ALGORITHM


def download_stages(backend: HardwareBackend) -> FilterChain:
    """GPU 메모리 프레임을 CPU 로 내리는 필터.

    디코딩 결과가 시스템 메모리로 나오는 백엔드(AMF, 소프트웨어)는 빈 체인.
    """
    if backend not in _DEVICE_FRAME_BACKENDS:
        return FilterChain()
    return FilterChain((FilterStage("hwdownload"), _stage("format", pix_fmts="nv12")))


# ---------------------------------------------------------------------------
# 전략별 필터 구성
# ---------------------------------------------------------------------------


def _linearize_stages(transfer: str, options: ToneMapOptions) -> FilterChain:
    """BT.2020 입력을 선형광 float RGB(BT.709 원색)로 바꾼다."""
    return FilterChain(
        (
            _stage(
                "zscale",
                tin=transfer,
                pin="bt2020",
                min="bt2020nc",
                t="linear",
                npl=float(options.peak),
            ),
            _stage("format", pix_fmts="gbrpf32le"),
            _stage("zscale", p="bt709"),
        )
    )


def _software_stages(transfer: str, options: ToneMapOptions, algorithm: str) -> FilterChain:
    """zscale 기반 선형광 변환 체인."""
    return _linearize_stages(transfer, options) + FilterChain(
        (
            _stage("tonemap", tonemap=algorithm, desat=0, peak=float(options.peak)),
            _stage("zscale", t="bt709", m="bt709", r="tv"),
            _stage("format", pix_fmts="yuv420p"),
        )
    )


def _tonemapx_stages(transfer: str, options: ToneMapOptions, algorithm: str) -> FilterChain:
    """``tonemapx`` (jellyfin-ffmpeg) 소프트웨어 체인. bt2390 을 지원한다."""
    return _linearize_stages(transfer, options) + FilterChain(
        (
            _stage(
                TONEMAPX,
                tonemap=algorithm,
                desat=0,
                peak=float(options.peak),
                t="bt709",
                m="bt709",
                p="bt709",
                format="yuv420p",
            ),
        )
    )


def _vpp_stages(transfer: str, options: ToneMapOptions, algorithm: str) -> FilterChain:
    """VAAPI / QSV VPP 톤 매핑."""
    return FilterChain(
        (
            _stage(
                "setparams",
                color_primaries="bt2020",
                color_trc=transfer,
                colorspace="bt2020nc",
            ),
            _stage("tonemap_vaapi", format="nv12", p="bt709", t="bt709", m="bt709"),
        )
    ) + download_stages(HardwareBackend.VAAPI)


def _cuda_stages(transfer: str, options: ToneMapOptions, algorithm: str) -> FilterChain:
    """NVIDIA CUDA 톤 매핑."""
    return FilterChain(
        (
            _stage(
                "tonemap_cuda",
                format="nv12",
                p="bt709",
                t="bt709",
                m="bt709",
                tonemap=algorithm,
                peak=float(options.peak),
                desat=0,
            ),
        )
    ) + download_stages(HardwareBackend.NVENC)


def _opencl_stages(transfer: str, options: ToneMapOptions, algorithm: str) -> FilterChain:
    """AMD OpenCL 톤 매핑 (시스템 메모리 프레임을 업로드)."""
    return FilterChain(
        (
            FilterStage("hwupload"),
            _stage(
                "tonemap_opencl",
                format="nv12",
                p="bt709",
                t="bt709",
                m="bt709",
                tonemap=algorithm,
                peak=float(options.peak),
                desat=0,
            ),
            FilterStage("hwdownload"),
            _stage("format", pix_fmts="nv12"),
        )
    )


def _videotoolbox_stages(transfer: str, options: ToneMapOptions, algorithm: str) -> FilterChain:
    """VideoToolbox 색 변환."""
    return FilterChain(
        (
            _stage(
                "scale_vt",
                format="nv12",
                color_matrix="bt709",
                color_primaries="bt709",
                color_transfer="bt709",
            ),
        )
    ) + download_stages(HardwareBackend.VIDEOTOOLBOX)


def _libplacebo_stage(algorithm: str, **extra: object) -> FilterStage:
    return _stage(
        LIBPLACEBO,
        **extra,
        tonemapping=_LIBPLACEBO_ALGORITHMS[algorithm],
        colorspace="bt709",
        color_primaries="bt709",
        color_trc="bt709",
        range="tv",
        format="yuv420p",
    )


def _libplacebo_stages(transfer: str, options: ToneMapOptions, algorithm: str) -> FilterChain:
    """Dolby Vision RPU 를 읽는 libplacebo 동적 톤 매핑."""
    return FilterChain((_libplacebo_stage(algorithm, apply_dolbyvision=1),))


def _libplacebo_static_stages(
    transfer: str, options: ToneMapOptions, algorithm: str
) -> FilterChain:
    """libplacebo 정적 톤 매핑 (tonemapx 가 없는 빌드의 bt2390)."""
    return FilterChain((_libplacebo_stage(algorithm),))


_StageBuilder = Callable[[str, ToneMapOptions, str], FilterChain]


@dataclass(frozen=True)
class _Strategy:
    """전략 이름, 필터 구성 함수, 톤 커브를 받는 필터."""

    name: str
    build: _StageBuilder
    curve_filter: str | None = None


_STRATEGIES: dict[tuple[HardwareBackend, ToneMapKind], _Strategy] = {
    (HardwareBackend.NONE, ToneMapKind.STATIC): _Strategy(
        "software", _software_stages, "tonemap"
    ),
    (HardwareBackend.VAAPI, ToneMapKind.STATIC): _Strategy("vpp", _vpp_stages),
    (HardwareBackend.QSV, ToneMapKind.STATIC): _Strategy("vpp", _vpp_stages),
    (HardwareBackend.NVENC, ToneMapKind.STATIC): _Strategy(
        "cuda", _cuda_stages, "tonemap_cuda"
    ),
    (HardwareBackend.AMF, ToneMapKind.STATIC): _Strategy(
        "opencl", _opencl_stages, "tonemap_opencl"
    ),
    (HardwareBackend.VIDEOTOOLBOX, ToneMapKind.STATIC): _Strategy(
        "videotoolbox", _videotoolbox_stages
    ),
}
for _backend in HardwareBackend:
    _STRATEGIES[(_backend, ToneMapKind.DYNAMIC)] = _Strategy(
        "libplacebo", _libplacebo_stages, LIBPLACEBO
    )

_TONEMAPX_STRATEGY = _Strategy("tonemapx", _tonemapx_stages, TONEMAPX)
_LIBPLACEBO_STATIC_STRATEGY = _Strategy(
    "libplacebo-static", _libplacebo_static_stages, LIBPLACEBO
)


def _select_strategy(
    backend: HardwareBackend,
    kind: ToneMapKind,
    algorithm: str,
    filters: FilterCapabilities,
) -> _Strategy:
    strategy = _STRATEGIES[(backend, kind)]
    # stock tonemap 이 모르는 커브는 지원하는 필터가 있으면 그쪽으로 보낸다
    if strategy.curve_filter == "tonemap" and algorithm not in _BASIC_CURVES:
        if filters.has(TONEMAPX):
            return _TONEMAPX_STRATEGY
        if filters.has(LIBPLACEBO):
            return _LIBPLACEBO_STATIC_STRATEGY
    return strategy


def _use_rpu(options: ToneMapOptions, filters: FilterCapabilities) -> bool:
    if options.dolby_vision_rpu is not None:
        return options.dolby_vision_rpu
    return filters.has(LIBPLACEBO)


def _tone_map_kind(
    hdr_class: HdrClass, options: ToneMapOptions, filters: FilterCapabilities
) -> ToneMapKind:
    # DOVI_INVALID 는 HDR10 과 같이 정적 곡선으로 처리
    if hdr_class.is_dolby_vision and hdr_class is not HdrClass.DOVI_INVALID:
        if _use_rpu(options, filters):
            return ToneMapKind.DYNAMIC
        if hdr_class is HdrClass.DOVI:
            logger.warning(
                "Dolby Vision without HDR10 base layer and no RPU-aware filter; "
                "falling back to static PQ tone mapping"
            )
    return ToneMapKind.STATIC


def plan_tone_map(
    hdr_class: HdrClass,
    backend: HardwareBackend = HardwareBackend.NONE,
    options: ToneMapOptions | None = None,
    *,
    hardware_tonemap: bool = True,
    filters: FilterCapabilities | None = None,
) -> ToneMapPlan:
    """HDR 분류와 백엔드로 톤 매핑 계획을 만든다.

    Args:
        hdr_class: HDR 분류 (UNKNOWN 보정은 :func:`infer_hdr_class` 에서 먼저 수행)
        backend: 디코딩 백엔드
        options: 톤 매핑 옵션
        hardware_tonemap: 백엔드가 네이티브 톤 매핑을 지원하는지.
            False면 프레임을 내린 뒤 소프트웨어 체인을 사용한다.
        filters: ffmpeg 빌드의 필터 지원 정보 (libplacebo / tonemapx 선택용)

    Returns:
        톤 매핑 계획. 필요 없으면 빈 계획.
    """
    opts = options or ToneMapOptions()
    if not opts.enabled or not requires_tone_mapping(hdr_class):
        return NO_TONE_MAPPING

    caps = filters or NO_FILTER_CAPABILITIES
    transfer = transfer_for(hdr_class)
    algorithm = normalize_algorithm(opts.algorithm)
    kind = _tone_map_kind(hdr_class, opts, caps)

    prefix = FilterChain()
    lookup_backend = backend
    if kind is ToneMapKind.DYNAMIC:
        prefix = download_stages(backend)
    elif backend is not HardwareBackend.NONE and not hardware_tonemap:
        prefix = download_stages(backend)
        lookup_backend = HardwareBackend.NONE

    strategy = _select_strategy(lookup_backend, kind, algorithm, caps)
    if strategy.curve_filter is not None:
        algorithm = algorithm_for(strategy.curve_filter, algorithm)
    chain = prefix + strategy.build(transfer, opts, algorithm)
    logger.debug(
        "Tone map plan for %s on %s: %s", hdr_class.value, backend.value, strategy.name
    )
    return ToneMapPlan(
        chain=chain, transfer=transfer, algorithm=algorithm, strategy=strategy.name
    )


def build_video_filter(plan: ToneMapPlan, backend: HardwareBackend) -> FilterChain:
    """최종 ``-vf`` 체인. 하드웨어 프레임이 남아 있으면 다운로드 단계를 붙인다."""
    if plan.chain.has("hwdownload"):
        return plan.chain
    return plan.chain + download_stages(backend)
