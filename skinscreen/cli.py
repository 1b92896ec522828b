"""
Command-line batch screening.

    skinscreen photos/*.jpg --model models/best_640n_0522.onnx --output report.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from skinscreen.config import ScreeningConfig
from skinscreen.core.batch import BatchRunner
from skinscreen.core.engine import OnnxInferenceEngine
from skinscreen.core.errors import ScreeningError
from skinscreen.core.pipeline import ScreeningPipeline
from skinscreen.core.skin_segmenter import SkinSegmenter
from skinscreen.utils.image_utils import encode_image_to_bytes, load_image_from_path
from skinscreen.utils.visualization import (
    create_skin_overlay,
    draw_detection_annotations,
    draw_verdict_banner,
)

logger = logging.getLogger("skinscreen")

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".gif", ".tif", ".tiff"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skinscreen",
        description="Screen images for explicit content with object detection and skin-color analysis.",
    )
    parser.add_argument("images", nargs="+", type=Path, help="Image files or directories")
    parser.add_argument("--model", help="ONNX detector model path")
    parser.add_argument("--workers", type=int, help="Concurrent images")
    parser.add_argument("--timeout", type=float, help="Seconds allowed per image")
    parser.add_argument("--confidence", type=float, help="Detector confidence floor")
    parser.add_argument("--iou", type=float, help="Suppression IoU threshold")
    parser.add_argument("--no-letterbox", action="store_true", help="Stretch instead of letterboxing")
    parser.add_argument(
        "--thresholds",
        type=_parse_thresholds,
        default=(),
        help="Extra skin-ratio cut lines to evaluate, e.g. 0.2,0.3,0.5",
    )
    parser.add_argument("--annotate", type=Path, help="Write annotated images to this directory")
    parser.add_argument("--histograms", action="store_true", help="Include chroma histograms in the report")
    parser.add_argument("--output", type=Path, help="Write the JSON report here instead of stdout")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _parse_thresholds(raw: str) -> tuple[float, ...]:
    try:
        values = tuple(float(v) for v in raw.split(",") if v.strip())
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid threshold list: {raw}") from e
    if any(not 0.0 <= v <= 1.0 for v in values):
        raise argparse.ArgumentTypeError("Thresholds must be fractions in [0, 1]")
    return values


def collect_images(paths: list[Path]) -> list[Path]:
    """Expand directories into their image files, sorted by name."""
    images = []
    for path in paths:
        if path.is_dir():
            images.extend(
                sorted(p for p in path.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
            )
        else:
            images.append(path)
    return images


def write_annotations(report, pipeline: ScreeningPipeline, out_dir: Path) -> list[Path]:
    """
    Write one annotated PNG per successfully screened image.

    Files are named <input index>_<stem>_screened.png so that equally named
    images from different directories never overwrite each other.

    Returns:
        Paths of the written files
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    segmenter = SkinSegmenter(pipeline.config)
    written = []

    for index, result in enumerate(report.results):
        if not result.ok or result.source is None:
            continue
        try:
            image = load_image_from_path(result.source)
        except ScreeningError as e:
            logger.warning(f"Cannot annotate {result.source}: {e.message}")
            continue
        seg = segmenter.segment(image)
        annotated = create_skin_overlay(image, seg.primary_mask)
        annotated = draw_detection_annotations(annotated, result.detections)
        annotated = draw_verdict_banner(annotated, result)
        target = out_dir / f"{index:03d}_{Path(result.source).stem}_screened.png"
        target.write_bytes(encode_image_to_bytes(annotated))
        written.append(target)

    return written


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = ScreeningConfig.from_env(
            model_path=args.model,
            max_workers=args.workers,
            timeout_seconds=args.timeout,
            confidence_floor=args.confidence,
            iou_threshold=args.iou,
            letterbox=False if args.no_letterbox else None,
        )
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    images = collect_images(args.images)
    if not images:
        logger.error("No images to screen")
        return 2

    try:
        engine = OnnxInferenceEngine(config.model_path)
    except ScreeningError as e:
        logger.error(f"{e.kind.value}: {e.message}")
        return 1

    with ScreeningPipeline(engine, config, thresholds=args.thresholds) as pipeline:
        runner = BatchRunner(
            pipeline,
            progress_callback=lambda done, total: logger.debug(f"Progress {done}/{total}"),
        )
        report = runner.run(images)

        if args.annotate:
            write_annotations(report, pipeline, args.annotate)

    payload = json.dumps(report.to_dict(include_histograms=args.histograms), indent=2, ensure_ascii=False)
    if args.output:
        args.output.write_text(payload, encoding="utf-8")
        logger.info(f"Report written to {args.output}")
    else:
        print(payload)

    logger.info(
        f"{report.successful_images} screened, {report.failed_images} failed, "
        f"{len(report.skipped)} skipped"
    )
    return 0 if report.failed_images == 0 and not report.cancelled else 1


if __name__ == "__main__":
    sys.exit(main())
