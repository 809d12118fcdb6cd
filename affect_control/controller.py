"""
Live detection loop driving the affect engine.

This is the main entry point for running the system on a camera. It handles
camera input, detection, the per-frame engine cycle, and reporting. Cycles
are strictly sequential; the only slow call per cycle is the detector.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

try:
    import cv2
    CV2_AVAILABLE = True
except ImportError:
    CV2_AVAILABLE = False

from .detector import FaceDetector
from .engine import AffectEngine, AffectReport, EngineConfig
from .recording import FrameRecord, RecordingWriter

logger = logging.getLogger(__name__)


@dataclass
class ControllerConfig:
    """Configuration for AffectController."""

    # Camera settings
    camera_id: int = 0
    frame_width: int = 640
    frame_height: int = 480
    target_fps: float = 30.0

    # Start every session with a fresh window, stabilizer and calibration
    reset_on_start: bool = True


class AffectController:
    """
    Camera -> detector -> engine loop.

    Usage:
        detector = MediaPipeDetector(classifier=OnnxExpressionClassifier("fer.onnx"))
        hub = AdaptationHub()
        controller = AffectController(detector, on_change=hub.apply)
        controller.run(on_report=print)

    stop() only raises the stop flag. The loop checks it immediately before
    every detection call, and the camera and detector are released after the
    loop has observed it, so no detection ever runs on a released camera.
    """

    def __init__(
        self,
        detector: FaceDetector,
        engine: Optional[AffectEngine] = None,
        config: Optional[ControllerConfig] = None,
        on_change: Optional[Callable[[str], None]] = None,
        camera=None,
        recorder: Optional[RecordingWriter] = None,
    ):
        """
        Args:
            detector: Per-frame face detector.
            engine: Affect engine; by default one matching the detector's
                landmark topology.
            config: Controller configuration.
            on_change: Adaptation callback, installed on the engine.
            camera: Pre-opened capture object with read()/release(); by
                default an OpenCV VideoCapture is opened on start.
            recorder: Optional writer receiving every frame's detector output.

        Raises:
            ValueError: If the engine's topology doesn't match the detector's.
        """
        self.detector = detector
        self.engine = engine or AffectEngine(EngineConfig(topology=detector.topology))
        self.config = config or ControllerConfig()
        self.recorder = recorder

        if self.engine.config.topology != detector.topology:
            raise ValueError(
                f"Engine topology '{self.engine.config.topology}' does not match "
                f"detector topology '{detector.topology}'"
            )
        if on_change is not None:
            self.engine.on_change = on_change

        self._camera = camera
        self._running = False
        self._frame_count = 0
        self._start_time = 0.0
        self._last_report: Optional[AffectReport] = None

    def _init_camera(self) -> bool:
        """
        Ensure the camera is opened and configured for capture.

        Returns:
            True if the camera is available, False otherwise.
        """
        if self._camera is not None:
            return True

        if not CV2_AVAILABLE:
            logger.error("OpenCV is required: pip install opencv-python")
            return False

        camera = cv2.VideoCapture(self.config.camera_id)
        if not camera.isOpened():
            logger.error(f"Failed to open camera {self.config.camera_id}")
            return False

        camera.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.frame_width)
        camera.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.frame_height)
        camera.set(cv2.CAP_PROP_FPS, self.config.target_fps)
        self._camera = camera
        logger.info(f"Camera {self.config.camera_id} initialized")
        return True

    def start(self) -> bool:
        """
        Begin a detection session.

        Returns:
            True if the camera is ready and the session started.
        """
        if not self._init_camera():
            return False

        if self.config.reset_on_start:
            self.engine.reset()

        self._running = True
        self._frame_count = 0
        self._start_time = time.time()
        return True

    def process_frame(self, frame: np.ndarray, now_ms: Optional[float] = None) -> AffectReport:
        """
        Detect on one frame and run one engine cycle.

        Args:
            frame: BGR image (H, W, 3).
            now_ms: Cycle time; defaults to the engine clock.

        Returns:
            The engine's report for this cycle.
        """
        detection = self.detector.detect(frame)
        now = self.engine.now() if now_ms is None else now_ms

        if self.recorder is not None:
            self.recorder.write(
                FrameRecord(
                    timestamp_ms=now,
                    expressions=detection.expressions,
                    landmarks=detection.landmarks,
                )
            )

        report = self.engine.process(detection.expressions, detection.landmarks, now)
        self._last_report = report
        return report

    def step(self) -> Optional[AffectReport]:
        """
        Run a single cycle: capture one frame, then detect and decide.

        Returns:
            The cycle's report, or None if stopped or no frame was read.
        """
        if not self._running or self._camera is None:
            return None

        ret, frame = self._camera.read()
        if not ret:
            return None

        # Last chance to honour stop() before the slow detection call
        if not self._running:
            return None

        report = self.process_frame(frame)
        self._frame_count += 1
        return report

    def run(
        self,
        on_report: Optional[Callable[[AffectReport], None]] = None,
        show_video: bool = False,
        max_frames: Optional[int] = None,
    ) -> None:
        """
        Run the loop until stop(), 'q' in the video window, or max_frames.

        Args:
            on_report: Called with every cycle's report.
            show_video: Display the camera feed with a debug overlay.
            max_frames: Stop after this many processed frames.
        """
        if not self.start():
            return

        target_interval = 1.0 / self.config.target_fps
        logger.info("Affect controller started")

        try:
            while self._running:
                loop_start = time.time()

                ret, frame = self._camera.read()
                if not ret:
                    continue

                if not self._running:
                    break

                report = self.process_frame(frame)
                self._frame_count += 1

                if on_report is not None:
                    on_report(report)

                if show_video and CV2_AVAILABLE:
                    self._draw_debug(frame, report)
                    cv2.imshow("Affect Control", frame)
                    if cv2.waitKey(1) & 0xFF == ord('q'):
                        break

                if max_frames is not None and self._frame_count >= max_frames:
                    break

                elapsed = time.time() - loop_start
                if elapsed < target_interval:
                    time.sleep(target_interval - elapsed)

        except KeyboardInterrupt:
            logger.info("Interrupted")

        finally:
            self._running = False
            self.close()

    def _draw_debug(self, frame: np.ndarray, report: AffectReport) -> None:
        """Overlay the stable label, scores and geometry onto the frame in place."""
        color = (0, 255, 0) if report.face_detected else (0, 0, 255)
        cv2.putText(frame, f"{report.label} ({report.confidence:.2f})", (10, 30),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.8, color, 2)

        y = 60
        texts = [f"cooldown: {report.cooling_ms:.0f}ms"]
        if report.warming_up:
            texts.append("warming up")
        for label, score in report.scores.items():
            texts.append(f"{label}: {score:.2f}")
        features = report.features
        texts.append(f"furrow {features.furrow:.2f} drop {features.corner_drop:.3f}")
        texts.append(f"open {features.mouth_open:.2f} squint {features.squint:.2f}")

        for text in texts:
            cv2.putText(frame, text, (10, y),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 0), 1)
            y += 20

    def stop(self) -> None:
        """Ask the loop to stop before its next detection call."""
        self._running = False

    def close(self) -> None:
        """
        Release the camera, detector and recorder.

        Only call this once the loop has exited (run() does so itself).
        """
        self._running = False

        if self._camera is not None:
            self._camera.release()
            self._camera = None

        self.detector.close()

        if self.recorder is not None:
            self.recorder.close()

        if CV2_AVAILABLE:
            try:
                cv2.destroyAllWindows()
            except cv2.error:
                # Headless OpenCV builds have no GUI backend
                pass

        if self._frame_count > 0:
            elapsed = time.time() - self._start_time
            logger.info(f"Processed {self._frame_count} frames in {elapsed:.1f}s "
                        f"({self._frame_count / max(elapsed, 1e-6):.1f} FPS)")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def last_report(self) -> Optional[AffectReport]:
        return self._last_report

    def __enter__(self) -> "AffectController":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
        self.close()
