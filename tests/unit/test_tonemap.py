"""톤 매핑 계획 테스트."""

from pathlib import Path

import pytest

from posterframe.ffmpeg.filters import LIBPLACEBO, TONEMAPX, FilterCapabilities
from posterframe.ffmpeg.tonemap import (
    ALGORITHMS,
    NO_TONE_MAPPING,
    TONE_MAPPING_REQUIRED,
    TRANSFER_HLG,
    TRANSFER_PQ,
    FilterChain,
    FilterStage,
    ToneMapOptions,
    algorithm_for,
    build_video_filter,
    download_stages,
    infer_hdr_class,
    normalize_algorithm,
    plan_tone_map,
    requires_tone_mapping,
    transfer_for,
)
from posterframe.models.media import HardwareBackend, HdrClass, MediaProfile

SOFTWARE_CHAIN = (
    "zscale=tin=smpte2084:pin=bt2020:min=bt2020nc:t=linear:npl=100,"
    "format=pix_fmts=gbrpf32le,"
    "zscale=p=bt709,"
    "tonemap=tonemap=hable:desat=0:peak=100,"
    "zscale=t=bt709:m=bt709:r=tv,"
    "format=pix_fmts=yuv420p"
)

# stock tonemap / tonemap_opencl 이 받는 tonemap 값
STOCK_CURVES = {"none", "linear", "gamma", "clip", "reinhard", "hable", "mobius"}
WITH_LIBPLACEBO = FilterCapabilities(frozenset({LIBPLACEBO}))
WITH_TONEMAPX = FilterCapabilities(frozenset({TONEMAPX, LIBPLACEBO}))


class TestRequiresToneMapping:
    """HDR 분류별 톤 매핑 필요 여부 표."""

    @pytest.mark.parametrize(
        ("hdr_class", "expected"),
        [
            (HdrClass.SDR, False),
            (HdrClass.UNKNOWN, False),
            (HdrClass.HDR10, True),
            (HdrClass.HDR10_PLUS, True),
            (HdrClass.HLG, True),
            (HdrClass.DOVI, True),
            (HdrClass.DOVI_WITH_HDR10, True),
            (HdrClass.DOVI_WITH_HDR10_PLUS, True),
            (HdrClass.DOVI_WITH_HLG, True),
            (HdrClass.DOVI_WITH_EL, True),
            (HdrClass.DOVI_WITH_EL_HDR10_PLUS, True),
            (HdrClass.DOVI_WITH_SDR, False),
            (HdrClass.DOVI_INVALID, True),
        ],
    )
    def test_decision_table(self, hdr_class: HdrClass, expected: bool) -> None:
        """표에 정의된 값과 정확히 일치."""
        assert requires_tone_mapping(hdr_class) is expected

    def test_every_class_defined(self) -> None:
        """모든 HdrClass 가 표에 존재."""
        assert set(TONE_MAPPING_REQUIRED) == set(HdrClass)


class TestInferHdrClass:
    """UNKNOWN 분류 보정 테스트."""

    def test_unknown_10bit_becomes_hdr10(self) -> None:
        """10비트 UNKNOWN → HDR10."""
        profile = MediaProfile(path=Path("a.mkv"), bit_depth=10, hdr_class=HdrClass.UNKNOWN)

        assert infer_hdr_class(profile) is HdrClass.HDR10

    def test_unknown_bt2020_becomes_hdr10(self) -> None:
        """BT.2020 색 공간 UNKNOWN → HDR10."""
        profile = MediaProfile(path=Path("a.mkv"), color_space="bt2020nc")

        assert infer_hdr_class(profile) is HdrClass.HDR10

    def test_unknown_bt2100_primaries_becomes_hdr10(self) -> None:
        """색 영역에 2100 이 포함되어도 HDR10."""
        profile = MediaProfile(path=Path("a.mkv"), color_primaries="bt2100")

        assert infer_hdr_class(profile) is HdrClass.HDR10

    def test_unknown_8bit_stays_unknown(self) -> None:
        """8비트 정보 없음 → UNKNOWN 유지."""
        profile = MediaProfile(path=Path("a.mkv"))

        assert infer_hdr_class(profile) is HdrClass.UNKNOWN

    def test_sdr_10bit_stays_sdr(self) -> None:
        """분류가 확정된 SDR 은 비트 깊이와 무관하게 유지."""
        profile = MediaProfile(path=Path("a.mkv"), bit_depth=10, hdr_class=HdrClass.SDR)

        assert infer_hdr_class(profile) is HdrClass.SDR


class TestTransferAndAlgorithm:
    """전달 함수·알고리즘 선택 테스트."""

    @pytest.mark.parametrize("hdr_class", [HdrClass.HLG, HdrClass.DOVI_WITH_HLG])
    def test_hlg_transfer(self, hdr_class: HdrClass) -> None:
        """HLG 계열은 arib-std-b67."""
        assert transfer_for(hdr_class) == TRANSFER_HLG

    @pytest.mark.parametrize(
        "hdr_class",
        [HdrClass.HDR10, HdrClass.HDR10_PLUS, HdrClass.DOVI, HdrClass.DOVI_INVALID],
    )
    def test_pq_transfer(self, hdr_class: HdrClass) -> None:
        """그 외는 smpte2084."""
        assert transfer_for(hdr_class) == TRANSFER_PQ

    def test_normalize_known(self) -> None:
        """허용된 알고리즘은 그대로."""
        assert normalize_algorithm("Reinhard") == "reinhard"
        assert normalize_algorithm("bt.2390") == "bt2390"

    def test_normalize_unknown_falls_back(self, caplog: pytest.LogCaptureFixture) -> None:
        """알 수 없는 값은 hable + 경고."""
        assert normalize_algorithm("foo") == "hable"
        assert "Unknown tone mapping algorithm" in caplog.text

    def test_normalize_empty(self) -> None:
        """빈 값은 hable."""
        assert normalize_algorithm(None) == "hable"


class TestFilterStage:
    """FilterStage / FilterChain 렌더링 테스트."""

    def test_render_without_params(self) -> None:
        """파라미터 없는 필터는 이름만."""
        assert FilterStage("hwdownload").render() == "hwdownload"

    def test_render_with_params_keeps_order(self) -> None:
        """파라미터 순서 유지."""
        stage = FilterStage("zscale", (("t", "bt709"), ("m", "bt709")))

        assert stage.render() == "zscale=t=bt709:m=bt709"
        assert stage.param("m") == "bt709"
        assert stage.param("missing") is None

    def test_empty_chain_is_falsy(self) -> None:
        """빈 체인은 False, 렌더링은 빈 문자열."""
        chain = FilterChain()

        assert not chain
        assert chain.render() == ""

    def test_download_stages(self) -> None:
        """GPU 프레임 백엔드만 다운로드 필터를 가진다."""
        assert download_stages(HardwareBackend.VAAPI).render() == "hwdownload,format=pix_fmts=nv12"
        assert not download_stages(HardwareBackend.AMF)
        assert not download_stages(HardwareBackend.NONE)


class TestPlanToneMap:
    """백엔드 × HDR 분류 전략 테스트."""

    def test_sdr_has_no_plan(self) -> None:
        """SDR 은 톤 매핑 없음."""
        plan = plan_tone_map(HdrClass.SDR)

        assert plan == NO_TONE_MAPPING
        assert not plan.required
        assert plan.render() == ""

    def test_disabled_option(self) -> None:
        """옵션으로 끄면 HDR 이어도 빈 계획."""
        plan = plan_tone_map(HdrClass.HDR10, options=ToneMapOptions(enabled=False))

        assert not plan.required

    @pytest.mark.parametrize("backend", list(HardwareBackend))
    def test_dovi_with_sdr_skips_everywhere(self, backend: HardwareBackend) -> None:
        """SDR 호환 레이어가 있는 Dolby Vision 은 어느 백엔드에서도 변환하지 않음."""
        assert not plan_tone_map(HdrClass.DOVI_WITH_SDR, backend).required

    def test_software_hdr10_chain(self) -> None:
        """소프트웨어 HDR10: zscale 선형광 체인."""
        plan = plan_tone_map(HdrClass.HDR10)

        assert plan.strategy == "software"
        assert plan.transfer == TRANSFER_PQ
        assert plan.algorithm == "hable"
        assert plan.render() == SOFTWARE_CHAIN

    def test_software_hlg_uses_hlg_transfer(self) -> None:
        """HLG 입력은 tin=arib-std-b67."""
        plan = plan_tone_map(HdrClass.HLG)

        assert plan.chain.stages[0].param("tin") == TRANSFER_HLG

    def test_software_custom_algorithm_and_peak(self) -> None:
        """알고리즘·피크 휘도 반영."""
        options = ToneMapOptions(algorithm="mobius", peak=400.0)
        plan = plan_tone_map(HdrClass.HDR10, options=options)

        assert plan.chain.stages[0].param("npl") == "400"
        tonemap = next(stage for stage in plan.chain.stages if stage.name == "tonemap")
        assert tonemap.param("tonemap") == "mobius"
        assert tonemap.param("peak") == "400"

    def test_dovi_invalid_treated_as_hdr10(self) -> None:
        """잘못된 Dolby Vision 은 HDR10 정적 곡선 (RPU 지원이어도)."""
        plan = plan_tone_map(
            HdrClass.DOVI_INVALID, options=ToneMapOptions(dolby_vision_rpu=True)
        )

        assert plan.strategy == "software"
        assert plan.render() == SOFTWARE_CHAIN

    @pytest.mark.parametrize("backend", [HardwareBackend.VAAPI, HardwareBackend.QSV])
    def test_vpp_chain(self, backend: HardwareBackend) -> None:
        """VAAPI / QSV: tonemap_vaapi 후 다운로드."""
        plan = plan_tone_map(HdrClass.HDR10, backend)

        assert plan.strategy == "vpp"
        assert plan.render() == (
            "setparams=color_primaries=bt2020:color_trc=smpte2084:colorspace=bt2020nc,"
            "tonemap_vaapi=format=nv12:p=bt709:t=bt709:m=bt709,"
            "hwdownload,format=pix_fmts=nv12"
        )

    def test_cuda_chain(self) -> None:
        """NVENC: tonemap_cuda 후 다운로드."""
        plan = plan_tone_map(HdrClass.HDR10_PLUS, HardwareBackend.NVENC)

        assert plan.strategy == "cuda"
        assert plan.chain.names == ["tonemap_cuda", "hwdownload", "format"]
        assert plan.chain.stages[0].param("tonemap") == "hable"
        assert plan.chain.stages[0].param("t") == "bt709"

    def test_opencl_chain(self) -> None:
        """AMF: 업로드 → tonemap_opencl → 다운로드."""
        plan = plan_tone_map(HdrClass.HLG, HardwareBackend.AMF)

        assert plan.strategy == "opencl"
        assert plan.chain.names == ["hwupload", "tonemap_opencl", "hwdownload", "format"]

    def test_videotoolbox_chain(self) -> None:
        """VideoToolbox: scale_vt 후 다운로드."""
        plan = plan_tone_map(HdrClass.HDR10, HardwareBackend.VIDEOTOOLBOX)

        assert plan.strategy == "videotoolbox"
        assert plan.chain.names == ["scale_vt", "hwdownload", "format"]
        assert plan.chain.stages[0].param("color_transfer") == "bt709"

    def test_hardware_without_native_tonemap_downloads_then_software(self) -> None:
        """네이티브 톤 매핑이 없으면 프레임을 내린 뒤 소프트웨어 체인."""
        plan = plan_tone_map(HdrClass.HDR10, HardwareBackend.QSV, hardware_tonemap=False)

        assert plan.strategy == "software"
        assert plan.render() == "hwdownload,format=pix_fmts=nv12," + SOFTWARE_CHAIN

    @pytest.mark.parametrize(
        "hdr_class",
        [
            HdrClass.DOVI,
            HdrClass.DOVI_WITH_HDR10,
            HdrClass.DOVI_WITH_HDR10_PLUS,
            HdrClass.DOVI_WITH_HLG,
            HdrClass.DOVI_WITH_EL,
            HdrClass.DOVI_WITH_EL_HDR10_PLUS,
        ],
    )
    def test_dolby_vision_prefers_rpu(self, hdr_class: HdrClass) -> None:
        """RPU 지원 시 Dolby Vision 은 libplacebo 동적 매핑."""
        options = ToneMapOptions(dolby_vision_rpu=True, algorithm="bt2390")
        plan = plan_tone_map(hdr_class, options=options)

        assert plan.strategy == "libplacebo"
        stage = plan.chain.stages[0]
        assert stage.name == "libplacebo"
        assert stage.param("apply_dolbyvision") == "1"
        assert stage.param("tonemapping") == "bt.2390"
        assert stage.param("color_trc") == "bt709"

    def test_dolby_vision_rpu_on_gpu_downloads_first(self) -> None:
        """GPU 백엔드에서는 libplacebo 전에 프레임을 내린다."""
        plan = plan_tone_map(
            HdrClass.DOVI, HardwareBackend.VAAPI, ToneMapOptions(dolby_vision_rpu=True)
        )

        assert plan.chain.names == ["hwdownload", "format", "libplacebo"]

    def test_dolby_vision_without_libplacebo_uses_static(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """libplacebo 가 없으면 정적 곡선 + 베이스 레이어 없는 프로파일 경고."""
        plan = plan_tone_map(HdrClass.DOVI)

        assert plan.strategy == "software"
        assert "without HDR10 base layer" in caplog.text

    def test_dolby_vision_uses_detected_libplacebo(self) -> None:
        """기본 설정에서도 libplacebo 가 감지되면 RPU 동적 매핑."""
        plan = plan_tone_map(HdrClass.DOVI, filters=WITH_LIBPLACEBO)

        assert plan.strategy == "libplacebo"
        assert plan.chain.stages[0].param("apply_dolbyvision") == "1"

    def test_rpu_override_disables_detected_libplacebo(self) -> None:
        """설정으로 끄면 libplacebo 가 있어도 정적 곡선."""
        plan = plan_tone_map(
            HdrClass.DOVI_WITH_HDR10,
            options=ToneMapOptions(dolby_vision_rpu=False),
            filters=WITH_LIBPLACEBO,
        )

        assert plan.strategy == "software"

    def test_hdr10_ignores_libplacebo_for_basic_curve(self) -> None:
        """HDR10 + hable 은 libplacebo 가 있어도 stock tonemap 체인."""
        plan = plan_tone_map(HdrClass.HDR10, filters=WITH_LIBPLACEBO)

        assert plan.render() == SOFTWARE_CHAIN


def _stage_named(chain: FilterChain, name: str) -> FilterStage:
    return next(stage for stage in chain.stages if stage.name == name)


class TestBt2390Routing:
    """bt2390 을 지원하는 필터로만 보내는지 테스트."""

    @pytest.mark.parametrize("algorithm", ALGORITHMS)
    @pytest.mark.parametrize(
        ("backend", "filter_name"),
        [(HardwareBackend.NONE, "tonemap"), (HardwareBackend.AMF, "tonemap_opencl")],
    )
    def test_stock_filters_get_supported_curve(
        self, backend: HardwareBackend, filter_name: str, algorithm: str
    ) -> None:
        """stock 필터에 렌더링되는 tonemap 값은 항상 해당 필터가 받는 값."""
        plan = plan_tone_map(HdrClass.HDR10, backend, ToneMapOptions(algorithm=algorithm))

        rendered = _stage_named(plan.chain, filter_name).param("tonemap")
        assert rendered in STOCK_CURVES
        assert f"tonemap={rendered}" in plan.render()

    def test_software_without_capable_filter_falls_back(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """tonemapx·libplacebo 가 없으면 hable 로 대체하고 경고."""
        plan = plan_tone_map(HdrClass.HDR10, options=ToneMapOptions(algorithm="bt2390"))

        assert plan.strategy == "software"
        assert plan.algorithm == "hable"
        assert "tonemap=tonemap=hable" in plan.render()
        assert "does not support tone mapping curve bt2390" in caplog.text

    def test_software_prefers_tonemapx(self) -> None:
        """tonemapx 가 있으면 bt2390 을 그대로 사용."""
        options = ToneMapOptions(algorithm="bt2390", peak=203.0)
        plan = plan_tone_map(HdrClass.HDR10, options=options, filters=WITH_TONEMAPX)

        assert plan.strategy == "tonemapx"
        assert plan.algorithm == "bt2390"
        assert plan.chain.names == ["zscale", "format", "zscale", "tonemapx"]
        assert plan.chain.stages[-1].render() == (
            "tonemapx=tonemap=bt2390:desat=0:peak=203:t=bt709:m=bt709:p=bt709:format=yuv420p"
        )

    def test_software_uses_static_libplacebo(self) -> None:
        """tonemapx 없이 libplacebo 만 있으면 정적 libplacebo (RPU 미적용)."""
        plan = plan_tone_map(
            HdrClass.HLG, options=ToneMapOptions(algorithm="bt2390"), filters=WITH_LIBPLACEBO
        )

        assert plan.strategy == "libplacebo-static"
        stage = plan.chain.stages[0]
        assert stage.name == "libplacebo"
        assert stage.param("apply_dolbyvision") is None
        assert stage.param("tonemapping") == "bt.2390"

    def test_opencl_falls_back(self, caplog: pytest.LogCaptureFixture) -> None:
        """tonemap_opencl 은 필터 지원과 무관하게 hable 로 대체."""
        plan = plan_tone_map(
            HdrClass.HDR10,
            HardwareBackend.AMF,
            ToneMapOptions(algorithm="bt2390"),
            filters=WITH_TONEMAPX,
        )

        assert plan.strategy == "opencl"
        assert _stage_named(plan.chain, "tonemap_opencl").param("tonemap") == "hable"
        assert "tonemap_opencl does not support" in caplog.text

    def test_cuda_keeps_bt2390(self) -> None:
        """tonemap_cuda 는 bt2390 을 받는다."""
        plan = plan_tone_map(
            HdrClass.HDR10, HardwareBackend.NVENC, ToneMapOptions(algorithm="bt2390")
        )

        assert plan.chain.stages[0].param("tonemap") == "bt2390"

    def test_algorithm_for_unlisted_filter(self) -> None:
        """톤 커브 표에 없는 필터는 값을 바꾸지 않는다."""
        assert algorithm_for("tonemap_vaapi", "bt2390") == "bt2390"
        assert algorithm_for("tonemap", "reinhard") == "reinhard"


class TestBuildVideoFilter:
    """최종 -vf 체인 구성 테스트."""

    def test_sdr_on_gpu_adds_download(self) -> None:
        """SDR 하드웨어 디코딩은 다운로드만."""
        chain = build_video_filter(NO_TONE_MAPPING, HardwareBackend.VAAPI)

        assert chain.render() == "hwdownload,format=pix_fmts=nv12"

    def test_sdr_software_has_no_filter(self) -> None:
        """SDR 소프트웨어 디코딩은 필터 없음."""
        assert not build_video_filter(NO_TONE_MAPPING, HardwareBackend.NONE)

    def test_sdr_on_amf_has_no_filter(self) -> None:
        """시스템 메모리 프레임 백엔드는 다운로드 불필요."""
        assert not build_video_filter(NO_TONE_MAPPING, HardwareBackend.AMF)

    def test_plan_with_download_not_duplicated(self) -> None:
        """이미 hwdownload 가 있으면 다시 붙이지 않음."""
        plan = plan_tone_map(HdrClass.HDR10, HardwareBackend.NVENC)
        chain = build_video_filter(plan, HardwareBackend.NVENC)

        assert chain.names.count("hwdownload") == 1
        assert chain == plan.chain
