"""Entry point for a single dice capture cycle."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import cv2
import numpy as np

from .config.settings import DetectionSettings, load_settings
from .models import DetectionResult
from .services.model_loader import ModelLoader, ModelRegistry
from .services.pipeline import CapturePipeline, CaptureResult
from .utils.geometry import box_corners
from .utils.video import grab_frame, load_image_frame, managed_capture

LOGGER = logging.getLogger(__name__)

BOX_COLOR_RGB = (0, 200, 0)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dice tracker - detect and read a single roll")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--image", type=str, default=None, help="Image file containing the roll")
    source.add_argument("--source", type=str, default=None, help="Camera index or video path to grab one frame from")
    parser.add_argument("--detection-model", type=str, default=None, help="Path to the detection model")
    parser.add_argument("--classifier-model", type=str, default=None, help="Path to the classification model")
    parser.add_argument("--frame-size", type=int, default=None, help="Side of the square capture frame")
    parser.add_argument("--annotate", type=str, default=None, help="Write the frame with labelled boxes to this path")
    parser.add_argument("--log-format", choices=["text", "json"], default=None, help="Logging format")
    return parser


def setup_logging(settings: DetectionSettings, level: int = logging.INFO) -> None:
    if settings.log_format == "json":
        formatter = logging.Formatter('{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}')
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=[handler], force=True)


def resolve_settings(args: argparse.Namespace) -> DetectionSettings:
    overrides = {}
    if args.detection_model:
        overrides["detection_model_path"] = Path(args.detection_model)
    if args.classifier_model:
        overrides["classifier_model_path"] = Path(args.classifier_model)
    if args.frame_size:
        overrides["frame_size"] = args.frame_size
    if args.log_format:
        overrides["log_format"] = args.log_format
    return load_settings(**overrides)


def parse_source(source: str) -> str | int:
    try:
        return int(source)
    except ValueError:
        return source


def acquire_frame(args: argparse.Namespace, settings: DetectionSettings) -> np.ndarray:
    if args.image:
        return load_image_frame(Path(args.image), settings.frame_size)
    with managed_capture(parse_source(args.source)) as capture:
        return grab_frame(capture, settings.frame_size)


def annotate_frame(frame: np.ndarray, detections: Sequence[DetectionResult], predictions: Sequence[int]) -> np.ndarray:
    """Draw each box with its index, predicted face and score. Returns an RGB copy."""

    output = frame.copy()
    height, width = output.shape[:2]
    for index, (detection, value) in enumerate(zip(detections, predictions)):
        top_left, bottom_right = box_corners(detection.bounding_box, width, height)
        cv2.rectangle(output, top_left, bottom_right, BOX_COLOR_RGB, 2)
        label = f"#{index}: {value} ({detection.score:.2f})"
        cv2.putText(
            output,
            label,
            (top_left[0], max(0, top_left[1] - 5)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.7,
            BOX_COLOR_RGB,
            2,
            lineType=cv2.LINE_AA,
        )
    return output


def format_result(result: CaptureResult) -> List[str]:
    lines = []
    for index, (detection, value) in enumerate(zip(result.detections, result.predictions)):
        box = detection.bounding_box
        lines.append(
            f"die {index}: {value} (score={detection.score:.2f}, "
            f"box=[{box.xmin:.3f}, {box.ymin:.3f}, {box.xmax:.3f}, {box.ymax:.3f}])"
        )
    lines.append(f"Roll total: {sum(result.predictions)}")
    return lines


def run_detection(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    setup_logging(settings)

    registry = ModelRegistry()
    ModelLoader(registry, settings).load_blocking()
    pipeline = CapturePipeline.from_settings(registry, settings)

    try:
        frame = acquire_frame(args, settings)
    except RuntimeError as exc:
        LOGGER.error("Image source failed: %s", exc)
        return 1

    result = pipeline.run(frame)
    for line in format_result(result):
        print(line)

    if args.annotate:
        annotated = annotate_frame(frame, result.detections, result.predictions)
        cv2.imwrite(args.annotate, cv2.cvtColor(annotated, cv2.COLOR_RGB2BGR))
        LOGGER.info("Annotated frame written to %s", args.annotate)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    sys.exit(run_detection(args))


if __name__ == "__main__":  # pragma: no cover
    main()
