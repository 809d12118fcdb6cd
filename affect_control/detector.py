"""
Detector adapters producing the engine's per-frame inputs.

The affect engine consumes an expression distribution and a landmark array
per frame. This module defines the FaceDetector interface and a concrete
adapter built on the MediaPipe Face Landmarker (Tasks API) for landmarks,
optionally paired with an ONNX facial-expression classifier for the
7-class distribution.
"""

import logging
import os
import time
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence

import numpy as np

try:
    import cv2
    CV2_AVAILABLE = True
except ImportError:
    CV2_AVAILABLE = False

try:
    import mediapipe as mp
    from mediapipe.tasks import python
    from mediapipe.tasks.python import vision

    MEDIAPIPE_AVAILABLE = True
except ImportError:
    MEDIAPIPE_AVAILABLE = False

from .features import BASE_EXPRESSIONS

logger = logging.getLogger(__name__)

# Model download URL
MODEL_URL = "https://storage.googleapis.com/mediapipe-models/face_landmarker/face_landmarker/float16/1/face_landmarker.task"
DEFAULT_MODEL_PATH = "face_landmarker.task"

# FER2013 class order, named with the base expression categories
FER2013_LABELS = ("angry", "disgusted", "fearful", "happy", "sad", "surprised", "neutral")


@dataclass
class Detection:
    """One frame of detector output.

    Attributes:
        expressions: Base expression distribution, or None if no face.
        landmarks: Landmark array (N, 2) in pixels, or None if no face.
        timestamp: Wall-clock capture time in seconds.
    """

    expressions: Optional[Dict[str, float]] = None
    landmarks: Optional[np.ndarray] = None
    timestamp: float = 0.0

    @property
    def face_detected(self) -> bool:
        return self.landmarks is not None


class FaceDetector(ABC):
    """
    Abstract base class for per-frame face detectors.

    Implementations must name the landmark topology they emit so the engine
    can be configured to match.
    """

    topology: str = "ibug68"

    @abstractmethod
    def detect(self, frame: np.ndarray) -> Detection:
        """
        Run detection on one BGR frame (H, W, 3).

        Returns:
            Detection; both fields None when no face is found.
        """
        pass

    def close(self) -> None:
        """Release detector resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def softmax(logits: np.ndarray) -> np.ndarray:
    shifted = logits - np.max(logits)
    exp = np.exp(shifted)
    return exp / np.sum(exp)


class OnnxExpressionClassifier:
    """ONNX runtime wrapper for a facial expression classifier.

    Crops the face from the frame using the landmark bounding box, converts
    it to grayscale at the model's input size and maps the class outputs to
    base expression categories. Classes outside BASE_EXPRESSIONS (e.g.
    "contempt") are dropped.
    """

    def __init__(
        self,
        model_path: str,
        labels: Sequence[str] = FER2013_LABELS,
        apply_softmax: bool = True,
        margin: float = 0.15,
        device: str = "cpu",
    ):
        """
        Initialize ONNX inference session.

        Args:
            model_path: Path to ONNX model file
            labels: Class name for each model output, in output order
            apply_softmax: Treat outputs as logits
            margin: Extra crop margin as a fraction of the face box
            device: Execution device ("cpu" or "cuda")

        Raises:
            FileNotFoundError: If model file doesn't exist
            ImportError: If onnxruntime or OpenCV is not installed
            ValueError: If the model input is not 4-D
        """
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(f"Model not found: {model_path}")
        if not CV2_AVAILABLE:
            raise ImportError("OpenCV is required: pip install opencv-python")

        try:
            import onnxruntime as ort
        except ImportError:
            raise ImportError(
                "onnxruntime not installed. Install with: pip install onnxruntime"
            )

        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL

        if device == "cuda":
            providers = ['CUDAExecutionProvider', 'CPUExecutionProvider']
        else:
            providers = ['CPUExecutionProvider']

        self.session = ort.InferenceSession(
            str(self.model_path),
            sess_options=sess_options,
            providers=providers,
        )

        model_input = self.session.get_inputs()[0]
        self.input_name = model_input.name
        shape = list(model_input.shape)
        if len(shape) != 4:
            raise ValueError(f"Expected a 4-D model input, got shape {shape}")

        # NCHW if the channel axis comes first, else NHWC
        self._channels_first = shape[1] in (1, 3)
        if self._channels_first:
            channels, height, width = shape[1], shape[2], shape[3]
        else:
            height, width, channels = shape[1], shape[2], shape[3]
        self.input_height = height if isinstance(height, int) else 48
        self.input_width = width if isinstance(width, int) else 48
        self.channels = channels if isinstance(channels, int) else 1

        self.labels = tuple(labels)
        self.apply_softmax = apply_softmax
        self.margin = margin

        logger.info(f"Loaded expression model from {model_path}")
        logger.debug(
            f"Input {self.input_name}: {self.input_height}x{self.input_width}x{self.channels}"
        )

    def _crop(self, frame: np.ndarray, landmarks: np.ndarray) -> Optional[np.ndarray]:
        h, w = frame.shape[:2]
        x0, y0 = landmarks[:, 0].min(), landmarks[:, 1].min()
        x1, y1 = landmarks[:, 0].max(), landmarks[:, 1].max()
        mx = (x1 - x0) * self.margin
        my = (y1 - y0) * self.margin

        left = int(max(0, np.floor(x0 - mx)))
        top = int(max(0, np.floor(y0 - my)))
        right = int(min(w, np.ceil(x1 + mx)))
        bottom = int(min(h, np.ceil(y1 + my)))
        if right - left < 2 or bottom - top < 2:
            return None
        return frame[top:bottom, left:right]

    def preprocess(self, face: np.ndarray) -> np.ndarray:
        gray = cv2.cvtColor(face, cv2.COLOR_BGR2GRAY)
        resized = cv2.resize(gray, (self.input_width, self.input_height))
        image = resized.astype(np.float32) / 255.0

        if self.channels == 3:
            image = np.stack([image] * 3, axis=-1)
        else:
            image = image[..., np.newaxis]

        if self._channels_first:
            image = np.transpose(image, (2, 0, 1))
        return image[np.newaxis, ...]

    def predict(self, frame: np.ndarray, landmarks: np.ndarray) -> Optional[Dict[str, float]]:
        """
        Classify the face outlined by landmarks.

        Returns:
            Distribution keyed by base category, or None if the crop or the
            inference failed.
        """
        face = self._crop(frame, landmarks)
        if face is None:
            return None

        try:
            outputs = self.session.run(None, {self.input_name: self.preprocess(face)})
        except Exception as e:
            logger.error(f"Expression inference error: {e}")
            return None

        values = np.asarray(outputs[0], dtype=np.float64).reshape(-1)
        if self.apply_softmax:
            values = softmax(values)

        return {
            label: float(value)
            for label, value in zip(self.labels, values)
            if label in BASE_EXPRESSIONS
        }


class MediaPipeDetector(FaceDetector):
    """Face landmarks from MediaPipe Face Landmarker plus optional expressions.

    Emits 478 landmarks in pixel coordinates ("mediapipe478" topology).
    Without a classifier the expression distribution is None, so the
    engine's window never fills and the stable label is held.
    """

    topology = "mediapipe478"

    def __init__(
        self,
        classifier: Optional[OnnxExpressionClassifier] = None,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        model_path: Optional[str] = None,
    ):
        """
        Initialize MediaPipe Face Landmarker.

        Args:
            classifier: Expression classifier run on each detected face
            min_detection_confidence: Minimum confidence for face detection [0, 1]
            min_tracking_confidence: Minimum confidence for landmark tracking [0, 1]
            model_path: Path to the face_landmarker.task model file. If None, will download.
        """
        if not MEDIAPIPE_AVAILABLE:
            raise ImportError(
                "MediaPipe is not installed. Install with: pip install mediapipe"
            )
        if not CV2_AVAILABLE:
            raise ImportError("OpenCV is required: pip install opencv-python")

        self.classifier = classifier
        self._model_path = model_path or self._get_model_path()

        base_options = python.BaseOptions(model_asset_path=self._model_path)
        options = vision.FaceLandmarkerOptions(
            base_options=base_options,
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False,
            num_faces=1,
            min_face_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )
        self._detector = vision.FaceLandmarker.create_from_options(options)

    def _get_model_path(self) -> str:
        """Get or download the face landmarker model."""
        if os.path.exists(DEFAULT_MODEL_PATH):
            return DEFAULT_MODEL_PATH

        package_dir = os.path.dirname(__file__)
        package_model_path = os.path.join(package_dir, DEFAULT_MODEL_PATH)
        if os.path.exists(package_model_path):
            return package_model_path

        logger.info(f"Downloading face landmarker model to {DEFAULT_MODEL_PATH}...")
        urllib.request.urlretrieve(MODEL_URL, DEFAULT_MODEL_PATH)
        logger.info("Model downloaded successfully.")
        return DEFAULT_MODEL_PATH

    def detect(self, frame: np.ndarray) -> Detection:
        timestamp = time.time()
        if frame is None or frame.size == 0:
            return Detection(timestamp=timestamp)

        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)

        result = self._detector.detect(mp_image)
        if not result.face_landmarks:
            return Detection(timestamp=timestamp)

        h, w = frame.shape[:2]
        landmarks = np.array(
            [[lm.x * w, lm.y * h] for lm in result.face_landmarks[0]],
            dtype=np.float64,
        )

        expressions = None
        if self.classifier is not None:
            expressions = self.classifier.predict(frame, landmarks)

        return Detection(expressions=expressions, landmarks=landmarks, timestamp=timestamp)

    def close(self) -> None:
        """Release MediaPipe resources."""
        if hasattr(self, "_detector") and self._detector:
            self._detector.close()
            self._detector = None
