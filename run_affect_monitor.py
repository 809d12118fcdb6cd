#!/usr/bin/env python3
"""
Real-time affect monitor with a printed adaptation feed.

Usage:
    python run_affect_monitor.py --camera 0 --model models/fer2013.onnx
    python run_affect_monitor.py --camera 0 --show-video
"""

import argparse

from affect_control.adaptation import AdaptationHub
from affect_control.controller import AffectController, ControllerConfig
from affect_control.detector import MediaPipeDetector, OnnxExpressionClassifier
from affect_control.engine import AffectEngine, EngineConfig


def parse_args():
    """
    Parse command-line arguments for the monitor.

    Returns:
        argparse.Namespace: Parsed arguments with attributes:
            - camera (int): camera device ID
            - model (str): optional ONNX expression classifier path
            - cooldown (float): cooldown after a switch in ms
            - show_video (bool): True to display the video window
            - fps (int): target frames per second
    """
    parser = argparse.ArgumentParser(description="Real-time affect monitor")
    parser.add_argument("--camera", type=int, default=0, help="Camera device ID")
    parser.add_argument("--model", type=str, default=None, help="ONNX expression model")
    parser.add_argument("--cooldown", type=float, default=4000.0, help="Cooldown after a switch (ms)")
    parser.add_argument("--show-video", action="store_true", help="Show video window")
    parser.add_argument("--fps", type=int, default=30, help="Target FPS")
    return parser.parse_args()


def main():
    args = parse_args()

    classifier = OnnxExpressionClassifier(args.model) if args.model else None
    detector = MediaPipeDetector(classifier=classifier)

    hub = AdaptationHub()
    hub.subscribe(lambda mode: print(f"[mode] {mode}: {hub.profile}"))

    engine = AffectEngine(
        EngineConfig(topology=detector.topology, cooldown_ms=args.cooldown),
        on_change=hub.apply,
    )
    controller = AffectController(
        detector,
        engine=engine,
        config=ControllerConfig(camera_id=args.camera, target_fps=args.fps),
    )

    # Print a compact score line about once a second
    def on_report(report):
        if controller.frame_count % 30 == 0 and report.scores:
            scores = " ".join(f"{k}:{v:.2f}" for k, v in report.scores.items())
            print(f"{report.label:<10s} {scores} cooldown:{report.cooling_ms:.0f}ms")

    controller.run(on_report=on_report, show_video=args.show_video)


if __name__ == "__main__":
    main()
