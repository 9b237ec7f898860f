"""Convenience CLI for recording turns from roll photos."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Callable, Optional, Sequence

from dice_detection.app.detect import setup_logging
from dice_detection.app.services.model_loader import ModelLoader, ModelRegistry
from dice_detection.app.services.pipeline import CapturePipeline
from dice_detection.app.utils.video import load_image_frame
from dice_turns.app.settings import ServiceSettings, get_settings
from dice_turns.services.roll_service import RollService


logger = logging.getLogger(__name__)

PROMPT = "correction (<index> <value> | c <index> | n <index> | blank to save)> "


def _build_service(settings: ServiceSettings) -> RollService:
    registry = ModelRegistry()
    ModelLoader(registry, settings).load_blocking()
    return RollService(CapturePipeline.from_settings(registry, settings))


def _dump(obj: object) -> str:
    return json.dumps(
        obj,
        indent=2,
        default=lambda value: value.isoformat() if hasattr(value, "isoformat") else value,
    )


def _print_capture(service: RollService) -> None:
    snapshot = service.snapshot()
    for die in snapshot["dice"]:
        marker = "" if die["state"] == "predicted" else f" -> {die['actual']} ({die['state']})"
        print(f"  die {die['index']}: predicted {die['predicted']}{marker}")
    print(f"  Roll total: {snapshot['total']}")


def apply_command(service: RollService, line: str) -> bool:
    """Apply one correction command. Returns False when the line is not understood."""

    parts = line.split()
    try:
        if len(parts) == 2 and parts[0] == "c":
            service.confirm(int(parts[1]))
        elif len(parts) == 2 and parts[0] == "n":
            service.cycle(int(parts[1]))
        elif len(parts) == 2:
            service.correct(int(parts[0]), int(parts[1]))
        else:
            return False
    except (ValueError, IndexError) as exc:
        print(f"  ignored: {exc}")
        return False
    return True


def review_capture(service: RollService, read_line: Callable[[str], str] = input) -> None:
    while True:
        try:
            line = read_line(PROMPT).strip()
        except EOFError:
            return
        if not line:
            return
        if apply_command(service, line):
            _print_capture(service)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Capture rolls from images and record them as turns.")
    parser.add_argument("images", nargs="+", type=Path, help="One photo per turn, in play order.")
    parser.add_argument(
        "--interactive",
        action="store_true",
        help="Prompt for corrections before saving each roll.",
    )
    parser.add_argument(
        "--history-limit",
        type=int,
        default=None,
        help="Number of most recent turns to print at the end (default: all).",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings, level=logging.WARNING)
    service = _build_service(settings)

    for image_path in args.images:
        try:
            frame = load_image_frame(image_path, settings.frame_size)
        except RuntimeError as exc:
            logger.error("Skipping %s: %s", image_path, exc)
            continue
        service.capture(frame)
        print(f"{image_path}:")
        _print_capture(service)
        if args.interactive:
            review_capture(service)
        turn = service.commit()
        print(f"[Roll {turn.roll_number:02d}] Total: {turn.total}")
        faces = service.aggregator.face_counts(turn.dice)
        print("  Faces: " + ", ".join(f"{face}x{count}" for face, count in faces.items() if count))

    history = service.history(args.history_limit)
    print(f"History entries: {len(history)}")
    for turn in history:
        print(_dump(turn.model_dump()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
