#!/usr/bin/env python3
"""
Real-time affect monitor CLI.

Usage:
    python -m affect_control.cli.run \
        --model models/fer2013.onnx \
        --camera 0 \
        --show-video

    # Capture a session for later replay:
    python -m affect_control.cli.run --model models/fer2013.onnx --record session.jsonl
"""

import argparse
import logging
import signal
import sys
from typing import Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run the real-time affect monitor",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # Model arguments
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Path to ONNX expression classifier (landmarks only if not specified)",
    )
    parser.add_argument(
        "--labels",
        type=str,
        default=None,
        help="Comma-separated class names in model output order (default: FER2013 order)",
    )
    parser.add_argument(
        "--landmarker",
        type=str,
        default=None,
        help="Path to face_landmarker.task (downloaded if not specified)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to configuration file (YAML or JSON)",
    )

    # Hardware arguments
    parser.add_argument(
        "--camera",
        type=int,
        default=0,
        help="Camera device ID",
    )
    parser.add_argument(
        "--fps",
        type=float,
        default=30.0,
        help="Target frames per second",
    )

    # Output arguments
    parser.add_argument(
        "--record",
        type=str,
        default=None,
        metavar="PATH",
        help="Record detector output to a JSON-lines file",
    )
    parser.add_argument(
        "--show-video",
        action="store_true",
        help="Display video feed with overlay",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress non-error output",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    # Misc arguments
    parser.add_argument(
        "--create-config",
        type=str,
        default=None,
        metavar="PATH",
        help="Create a default config file and exit",
    )

    return parser.parse_args(argv)


def build_controller(args: argparse.Namespace):
    """
    Assemble detector, engine, adaptation hub and controller from arguments.

    Returns:
        Tuple of (controller, hub)
    """
    from affect_control.adaptation import AdaptationHub
    from affect_control.config import load_config
    from affect_control.controller import AffectController, ControllerConfig
    from affect_control.detector import (
        FER2013_LABELS,
        MediaPipeDetector,
        OnnxExpressionClassifier,
    )
    from affect_control.engine import AffectEngine
    from affect_control.recording import RecordingWriter

    engine_config = load_config(args.config)

    classifier = None
    if args.model:
        labels = tuple(args.labels.split(",")) if args.labels else FER2013_LABELS
        classifier = OnnxExpressionClassifier(args.model, labels=labels)
    else:
        logger.warning("No expression model given; the stable label will be held")

    detector = MediaPipeDetector(classifier=classifier, model_path=args.landmarker)

    # The detector decides the landmark numbering
    if engine_config.topology != detector.topology:
        logger.info(f"Using detector topology '{detector.topology}'")
        engine_config.topology = detector.topology

    hub = AdaptationHub(initial_mode=engine_config.default_label)
    hub.subscribe(lambda mode: logger.info(f"Adaptation mode: {mode}"))

    engine = AffectEngine(engine_config, on_change=hub.apply)
    recorder = RecordingWriter(args.record) if args.record else None

    controller = AffectController(
        detector,
        engine=engine,
        config=ControllerConfig(camera_id=args.camera, target_fps=args.fps),
        recorder=recorder,
    )
    return controller, hub


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the live monitor CLI."""
    args = parse_args(argv)

    # Set log level
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.WARNING)

    # Handle create-config option
    if args.create_config:
        from affect_control.config import create_default_config
        create_default_config(args.create_config)
        print(f"Created default config at: {args.create_config}")
        return 0

    # Print banner
    if not args.quiet:
        print("=" * 60)
        print("Affect Control - Real-time Monitor")
        print("=" * 60)
        print(f"Model: {args.model or 'None (landmarks only)'}")
        print(f"Camera: {args.camera}")
        print(f"Recording: {args.record or 'Disabled'}")
        print(f"Target FPS: {args.fps}")
        print("=" * 60)
        print()

    try:
        controller, hub = build_controller(args)
    except (FileNotFoundError, ImportError, ValueError) as e:
        logger.error(f"Setup failed: {e}")
        return 1

    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info("Received shutdown signal")
        controller.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    def on_report(report):
        if report.changed and not args.quiet:
            print(f"-> {report.label} (confidence {report.confidence:.2f})")

    controller.run(on_report=on_report, show_video=args.show_video)

    if not args.quiet:
        print()
        print(f"Monitor stopped in mode: {hub.mode}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
