"""하드웨어 가속 디코딩 경로 결정.

호스트가 보고한 가속기 설정으로 백엔드를 한 번 정하고,
파일마다 코덱·HDR 여부에 따라 하드웨어 사용 가능 여부를 판단한다.

- 백엔드별 ``-init_hw_device`` / ``-hwaccel`` 인자
- 백엔드별 코덱 허용 목록
- 합성 소스 1프레임 디코딩으로 드라이버를 검증하는 프로브 (백엔드당 1회, 결과 캐시)
- 하드웨어 디코딩에 실패한 코덱을 기억하는 :class:`FailedCodecSet`
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass

from posterframe.ffmpeg.executor import ProcessRunner
from posterframe.models.media import SOFTWARE_DECISION, HardwareBackend, HardwareDecision

logger = logging.getLogger(__name__)

RENDER_DEVICE = "/dev/dri/renderD128"

INIT_ARGS: dict[HardwareBackend, tuple[str, ...]] = {
    HardwareBackend.NONE: (),
    HardwareBackend.VAAPI: ("-init_hw_device", f"vaapi=va:{RENDER_DEVICE}"),
    HardwareBackend.QSV: (
        "-init_hw_device",
        f"vaapi=va:{RENDER_DEVICE}",
        "-init_hw_device",
        "qsv=qs@va",
    ),
    HardwareBackend.NVENC: ("-init_hw_device", "cuda=cu:0"),
    HardwareBackend.AMF: ("-init_hw_device", "opencl=ocl", "-filter_hw_device", "ocl"),
    HardwareBackend.VIDEOTOOLBOX: ("-init_hw_device", "videotoolbox=vt"),
}

ACCEL_ARGS: dict[HardwareBackend, tuple[str, ...]] = {
    HardwareBackend.NONE: (),
    # QSV 는 VAAPI 디바이스에서 파생되므로 디코딩도 VAAPI 로 한다
    HardwareBackend.VAAPI: ("-hwaccel", "vaapi", "-hwaccel_output_format", "vaapi"),
    HardwareBackend.QSV: ("-hwaccel", "vaapi", "-hwaccel_output_format", "vaapi"),
    HardwareBackend.NVENC: ("-hwaccel", "cuda", "-hwaccel_output_format", "cuda"),
    HardwareBackend.AMF: ("-hwaccel", "vaapi"),
    HardwareBackend.VIDEOTOOLBOX: (
        "-hwaccel",
        "videotoolbox",
        "-hwaccel_output_format",
        "videotoolbox_vld",
    ),
}

_COMMON_CODECS = frozenset({"h264", "hevc"})

CODEC_SUPPORT: dict[HardwareBackend, frozenset[str]] = {
    HardwareBackend.NONE: frozenset(),
    HardwareBackend.VAAPI: _COMMON_CODECS | {"vp9", "av1"},
    HardwareBackend.QSV: _COMMON_CODECS | {"vp9", "av1"},
    HardwareBackend.NVENC: _COMMON_CODECS | {"vp9", "av1"},
    HardwareBackend.AMF: _COMMON_CODECS,
    HardwareBackend.VIDEOTOOLBOX: _COMMON_CODECS,
}

_CODEC_ALIASES = {
    "avc": "h264",
    "avc1": "h264",
    "h265": "hevc",
    "hvc1": "hevc",
    "hev1": "hevc",
    # Dolby Vision 스트림은 HEVC 비트스트림
    "dvhe": "hevc",
    "dvh1": "hevc",
    "dolbyvision": "hevc",
    "vp09": "vp9",
    "av01": "av1",
}


def normalize_codec(codec: str | None) -> str:
    """ffprobe / 컨테이너 코덱 이름을 표준 이름으로 정규화."""
    if not codec:
        return "unknown"
    normalized = codec.strip().lower()
    return _CODEC_ALIASES.get(normalized, normalized)


@dataclass(frozen=True)
class HardwareSettings:
    """호스트가 보고한 하드웨어 가속 설정.

    Attributes:
        accel_type: 가속기 종류 (vaapi / qsv / nvenc / amf / videotoolbox, None이면 소프트웨어)
        decoding_codecs: 호스트에서 하드웨어 디코딩을 켠 코덱. 비어 있으면 백엔드 기본 목록
        vpp_tonemapping: QSV 에서 VPP 톤 매핑 사용 가능 여부
        videotoolbox_tonemapping: VideoToolbox 톤 매핑 사용 가능 여부
        validate: 첫 사용 전 검증 프로브 실행 여부
    """

    accel_type: str | None = None
    decoding_codecs: tuple[str, ...] = ()
    vpp_tonemapping: bool = False
    videotoolbox_tonemapping: bool = False
    validate: bool = True


class FailedCodecSet:
    """하드웨어 디코딩에 실패한 코덱 집합.

    프로세스 수명 동안만 유지되며 한 번 추가된 코덱은 제거되지 않는다.
    """

    def __init__(self) -> None:
        """초기화."""
        self._codecs: set[str] = set()
        self._lock = threading.Lock()

    def add(self, codec: str) -> bool:
        """코덱 추가. 새로 추가된 경우 True."""
        key = normalize_codec(codec)
        with self._lock:
            if key in self._codecs:
                return False
            self._codecs.add(key)
            return True

    def __contains__(self, codec: object) -> bool:
        if not isinstance(codec, str):
            return False
        key = normalize_codec(codec)
        with self._lock:
            return key in self._codecs

    def __len__(self) -> int:
        with self._lock:
            return len(self._codecs)

    def snapshot(self) -> frozenset[str]:
        """현재 실패 코덱 목록 사본."""
        with self._lock:
            return frozenset(self._codecs)


def build_validation_command(backend: HardwareBackend, ffmpeg_path: str = "ffmpeg") -> list[str]:
    """백엔드 검증용 ffmpeg 명령 (합성 소스 1프레임)."""
    return [
        ffmpeg_path,
        "-hide_banner",
        "-loglevel",
        "error",
        *INIT_ARGS[backend],
        "-f",
        "lavfi",
        "-i",
        "nullsrc=s=64x64:d=0.1",
        "-frames:v",
        "1",
        "-f",
        "null",
        "-",
    ]


class HardwareCapabilityResolver:
    """파일별 하드웨어 디코딩 경로 결정기.

    백엔드는 생성 시 한 번 정해지고, 코덱 적합성은 호출마다 다시 판단한다.
    """

    def __init__(
        self,
        settings: HardwareSettings | None = None,
        runner: ProcessRunner | None = None,
        failed_codecs: FailedCodecSet | None = None,
        ffmpeg_path: str = "ffmpeg",
        validation_timeout: float = 15.0,
    ) -> None:
        """
        초기화.

        Args:
            settings: 호스트 하드웨어 설정
            runner: 검증 프로브를 실행할 ProcessRunner
            failed_codecs: 공유할 실패 코덱 집합 (기본: 새 집합)
            ffmpeg_path: ffmpeg 실행 파일 경로
            validation_timeout: 검증 프로브 타임아웃 (초)
        """
        self.settings = settings or HardwareSettings()
        self.runner = runner or ProcessRunner()
        self.failed_codecs = failed_codecs if failed_codecs is not None else FailedCodecSet()
        self.ffmpeg_path = ffmpeg_path
        self.validation_timeout = validation_timeout
        self.backend = HardwareBackend.from_name(self.settings.accel_type)
        if self.settings.accel_type and self.backend is HardwareBackend.NONE:
            logger.warning("Unknown hardware acceleration type: %s", self.settings.accel_type)
        self._validation: dict[HardwareBackend, bool] = {}
        self._validation_lock = asyncio.Lock()

    @property
    def supports_tone_mapping(self) -> bool:
        """현재 백엔드가 하드웨어 톤 매핑을 지원하는지."""
        if self.backend in (HardwareBackend.VAAPI, HardwareBackend.NVENC, HardwareBackend.AMF):
            return True
        if self.backend is HardwareBackend.QSV:
            return self.settings.vpp_tonemapping
        if self.backend is HardwareBackend.VIDEOTOOLBOX:
            return self.settings.videotoolbox_tonemapping
        return False

    def allowed_codecs(self) -> frozenset[str]:
        """현재 백엔드에서 하드웨어 디코딩을 허용하는 코덱."""
        supported = CODEC_SUPPORT[self.backend]
        if not self.settings.decoding_codecs:
            return supported
        enabled = {normalize_codec(codec) for codec in self.settings.decoding_codecs}
        return supported & enabled

    def resolve(self, codec: str, *, needs_tone_mapping: bool = False) -> HardwareDecision:
        """
        코덱과 HDR 여부로 디코딩 경로를 결정한다 (검증 프로브 없이).

        Args:
            codec: 비디오 코덱 이름
            needs_tone_mapping: HDR → SDR 변환이 필요한지

        Returns:
            하드웨어 결정. 사용할 수 없으면 ``reason`` 이 채워진 소프트웨어 결정.
        """
        if self.backend is HardwareBackend.NONE:
            return SOFTWARE_DECISION

        key = normalize_codec(codec)
        if key in self.failed_codecs:
            return self._software(f"codec {key} previously failed on hardware")
        if key not in self.allowed_codecs():
            return self._software(f"codec {key} not supported by {self.backend.value}")
        if needs_tone_mapping and not self.supports_tone_mapping:
            return self._software(f"backend insufficient: {self.backend.value} cannot tone-map")

        return HardwareDecision(
            backend=self.backend,
            init_args=INIT_ARGS[self.backend],
            accel_args=ACCEL_ARGS[self.backend],
            supports_codec=True,
        )

    async def resolve_validated(
        self,
        codec: str,
        *,
        needs_tone_mapping: bool = False,
    ) -> HardwareDecision:
        """검증 프로브까지 통과한 경우에만 하드웨어 결정을 돌려준다.

        프로브가 실패하면 코덱을 실패 집합에 추가한다.
        """
        decision = self.resolve(codec, needs_tone_mapping=needs_tone_mapping)
        if not decision.use_hardware or not self.settings.validate:
            return decision
        if await self.validate():
            return decision
        self.mark_failed(codec)
        return self._software(f"{self.backend.value} validation probe failed")

    async def validate(self) -> bool:
        """백엔드 검증 프로브를 실행한다. 결과는 백엔드별로 캐시된다."""
        if self.backend is HardwareBackend.NONE:
            return False
        async with self._validation_lock:
            cached = self._validation.get(self.backend)
            if cached is not None:
                return cached
            command = build_validation_command(self.backend, self.ffmpeg_path)
            result = await self.runner.run(
                command[0], command[1:], timeout=self.validation_timeout
            )
            passed = result.ok
            if passed:
                logger.info("Hardware backend %s validated", self.backend.value)
            else:
                logger.warning(
                    "Hardware backend %s failed validation (code %d): %s",
                    self.backend.value,
                    result.returncode,
                    result.stderr.strip()[-300:],
                )
            self._validation[self.backend] = passed
            return passed

    def clear_validation_cache(self) -> None:
        """검증 결과 캐시 초기화 (드라이버 교체 후 재검증용)."""
        self._validation.clear()

    def mark_failed(self, codec: str) -> bool:
        """
        하드웨어 디코딩 실패 코덱을 기록한다.

        Returns:
            새로 기록된 경우 True
        """
        added = self.failed_codecs.add(codec)
        if added:
            logger.warning(
                "Hardware decoding failed for codec %s on %s; using software from now on",
                normalize_codec(codec),
                self.backend.value,
            )
        return added

    def _software(self, reason: str) -> HardwareDecision:
        logger.debug("Software decoding: %s", reason)
        return HardwareDecision(
            backend=HardwareBackend.NONE,
            supports_codec=False,
            reason=reason,
        )
