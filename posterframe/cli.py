"""posterframe 명령행 인터페이스.

영상 파일(또는 디렉토리)에서 포스터용 대표 프레임을 추출한다.
설정 파일 → 환경변수 → CLI 옵션 순서로 값을 덮어쓰며,
파일 하나가 실패해도 나머지 파일 처리는 계속된다.

사용 예::

    posterframe movie.mkv
    posterframe ~/Videos/Shows -o ~/Pictures/posters --hwaccel vaapi
    posterframe episode.mp4 --timestamp 00:12:30 --format png
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import sys
from pathlib import Path

from posterframe import __version__
from posterframe.config import (
    ENV_HWACCEL,
    ENV_OUTPUT_DIR,
    HWACCEL_TYPES,
    OUTPUT_FORMATS,
    TONEMAP_ALGORITHMS,
    apply_config_to_env,
    generate_default_config,
    get_default_black_min_duration,
    get_default_black_pixel_threshold,
    get_default_blackdetect,
    get_default_blackdetect_parallel,
    get_default_config_path,
    get_default_dolby_vision_rpu,
    get_default_ffmpeg_path,
    get_default_ffprobe_path,
    get_default_hw_codecs,
    get_default_hw_validate,
    get_default_hwaccel,
    get_default_max_concurrency,
    get_default_max_retries,
    get_default_min_brightness,
    get_default_output_dir,
    get_default_output_format,
    get_default_quality,
    get_default_timeout,
    get_default_tonemap,
    get_default_tonemap_algorithm,
    get_default_tonemap_peak,
    get_default_videotoolbox_tonemapping,
    get_default_vpp_tonemapping,
    load_config,
)
from posterframe.core.detector import BlackDetectSettings
from posterframe.core.extractor import ExtractionSettings
from posterframe.core.pipeline import BatchSummary, PosterFramePipeline
from posterframe.core.scanner import collect_video_paths
from posterframe.ffmpeg.hardware import HardwareSettings
from posterframe.ffmpeg.tonemap import ToneMapOptions
from posterframe.utils import parse_timestamp, truncate_path

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """
    로깅 설정.

    Args:
        verbose: 상세 로그 여부
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_parser() -> argparse.ArgumentParser:
    """CLI 파서 생성."""
    parser = argparse.ArgumentParser(
        prog="posterframe",
        description=f"영상에서 포스터용 대표 프레임을 추출합니다. (v{__version__})",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "targets",
        nargs="*",
        default=[],
        help="영상 파일 또는 디렉토리",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        type=str,
        default=None,
        help=f"이미지 저장 디렉토리 (기본: 영상 디렉토리, 환경변수: {ENV_OUTPUT_DIR})",
    )
    parser.add_argument(
        "--format",
        choices=OUTPUT_FORMATS,
        default=None,
        help="출력 이미지 포맷 (기본: jpg)",
    )
    parser.add_argument(
        "--quality",
        type=int,
        default=None,
        help="JPEG 품질 1-31, 낮을수록 고품질 (기본: 2)",
    )
    parser.add_argument(
        "--timestamp",
        type=str,
        default=None,
        help="우선 시도할 추출 시점 (HH:MM:SS, MM:SS, 초)",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=None,
        help="최대 추출 시도 횟수 (기본: 50)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="시도별 타임아웃 초 (기본: 60)",
    )
    parser.add_argument(
        "--min-brightness",
        type=float,
        default=None,
        help="채택할 프레임의 최소 평균 휘도 0-1, 0이면 검사 안 함 (기본: 0.05)",
    )
    parser.add_argument(
        "--hwaccel",
        choices=HWACCEL_TYPES,
        default=None,
        help=f"하드웨어 가속 백엔드 (환경변수: {ENV_HWACCEL})",
    )
    parser.add_argument(
        "--no-tonemap",
        action="store_true",
        help="HDR → SDR 톤 매핑 비활성화",
    )
    parser.add_argument(
        "--algorithm",
        choices=TONEMAP_ALGORITHMS,
        default=None,
        help="톤 매핑 알고리즘 (기본: hable)",
    )
    parser.add_argument(
        "--peak",
        type=float,
        default=None,
        help="톤 매핑 공칭 피크 휘도 (기본: 100)",
    )
    parser.add_argument(
        "--no-blackdetect",
        action="store_true",
        help="검은 화면 구간 감지 비활성화",
    )
    parser.add_argument(
        "--jobs",
        type=int,
        default=None,
        help="동시 ffmpeg 실행 수 (기본: 코어 수 기반)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="타임스탬프 선택 난수 시드 (재현용)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="설정 파일 경로 (기본: ~/.posterframe/config.toml)",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="기본 설정 파일 생성",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="상세 로그 출력",
    )
    return parser


def cmd_init_config(config_path: Path | None = None) -> bool:
    """
    --init-config 옵션 처리.

    기본 설정 파일 템플릿을 생성한다. 이미 있으면 덮어쓰지 않는다.

    Returns:
        파일을 새로 만들었으면 True
    """
    path = config_path or get_default_config_path()
    if path.exists():
        print(f"이미 존재합니다: {path}")
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(generate_default_config(), encoding="utf-8")
    print(f"설정 파일 생성됨: {path}")
    return True


def build_pipeline(args: argparse.Namespace) -> PosterFramePipeline:
    """CLI 인자와 환경변수 기본값으로 파이프라인을 구성한다 (CLI 우선)."""
    output_dir = Path(args.output_dir).expanduser() if args.output_dir else get_default_output_dir()

    extraction = ExtractionSettings(
        output_dir=output_dir,
        output_format=args.format or get_default_output_format(),
        quality=args.quality if args.quality is not None else get_default_quality(),
        max_retries=args.retries if args.retries is not None else get_default_max_retries(),
        attempt_timeout=args.timeout if args.timeout is not None else get_default_timeout(),
        min_brightness=(
            args.min_brightness
            if args.min_brightness is not None
            else get_default_min_brightness()
        ),
    )
    blackdetect = BlackDetectSettings(
        enabled=get_default_blackdetect() and not args.no_blackdetect,
        pixel_threshold=get_default_black_pixel_threshold(),
        min_duration=get_default_black_min_duration(),
        parallel=get_default_blackdetect_parallel(),
    )
    tone_map = ToneMapOptions(
        enabled=get_default_tonemap() and not args.no_tonemap,
        algorithm=args.algorithm or get_default_tonemap_algorithm(),
        peak=args.peak if args.peak is not None else get_default_tonemap_peak(),
        dolby_vision_rpu=get_default_dolby_vision_rpu(),
    )

    accel_type = args.hwaccel if args.hwaccel is not None else get_default_hwaccel()
    hardware = HardwareSettings(
        accel_type=None if accel_type == "none" else accel_type,
        decoding_codecs=get_default_hw_codecs(),
        vpp_tonemapping=get_default_vpp_tonemapping(),
        videotoolbox_tonemapping=get_default_videotoolbox_tonemapping(),
        validate=get_default_hw_validate(),
    )

    return PosterFramePipeline.create(
        ffmpeg_path=get_default_ffmpeg_path(),
        ffprobe_path=get_default_ffprobe_path(),
        max_concurrency=args.jobs if args.jobs else get_default_max_concurrency(),
        hardware=hardware,
        blackdetect=blackdetect,
        extraction=extraction,
        tone_map=tone_map,
        rng=random.Random(args.seed) if args.seed is not None else None,
    )


def print_summary(summary: BatchSummary) -> None:
    """파일별 결과와 성공/실패 개수 출력."""
    for result in summary.results:
        source = truncate_path(str(result.source))
        if result.ok:
            print(f"  [OK] {source} -> {result.path}")
        else:
            print(f"  [FAIL] {source}")
    print(f"\n완료: 성공 {summary.succeeded}개, 실패 {summary.failed}개")


def main(argv: list[str] | None = None) -> int:
    """CLI 진입점.

    Returns:
        종료 코드 (모든 파일 성공 시 0, 그 외 1, 인자 오류 2)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # --init-config 처리 (가장 먼저, 로깅/설정 로드 전)
    if args.init_config:
        cmd_init_config(Path(args.config).expanduser() if args.config else None)
        return 0

    setup_logging(args.verbose)

    # 설정 파일 로드 및 환경변수 적용
    config_path = Path(args.config).expanduser() if args.config else None
    apply_config_to_env(load_config(config_path))

    if not args.targets:
        parser.print_usage(sys.stderr)
        print("처리할 영상 파일 또는 디렉토리를 지정하세요.", file=sys.stderr)
        return 2

    preferred: float | None = None
    if args.timestamp:
        try:
            preferred = parse_timestamp(args.timestamp)
        except ValueError as e:
            print(f"오류: {e}", file=sys.stderr)
            return 2

    try:
        pipeline = build_pipeline(args)
    except ValueError as e:
        print(f"오류: {e}", file=sys.stderr)
        return 2

    video_paths = collect_video_paths([Path(target).expanduser() for target in args.targets])
    if not video_paths:
        print("처리할 영상 파일이 없습니다.", file=sys.stderr)
        return 1

    logger.info("Extracting poster frames for %d file(s)", len(video_paths))
    summary = asyncio.run(pipeline.extract_many(video_paths, preferred))
    print_summary(summary)
    return 0 if summary.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
