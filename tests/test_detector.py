"""
Tests for detector adapters with a mocked ONNX runtime.
"""

import sys
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from affect_control.detector import (
    FER2013_LABELS,
    Detection,
    OnnxExpressionClassifier,
    softmax,
)

from synthetic import relaxed_face


def fake_onnxruntime(shape, outputs):
    """onnxruntime stand-in whose session returns fixed outputs."""
    model_input = MagicMock()
    model_input.name = "input"
    model_input.shape = shape

    session = MagicMock()
    session.get_inputs.return_value = [model_input]
    session.run.return_value = [np.asarray([outputs], dtype=np.float32)]

    ort = MagicMock()
    ort.InferenceSession.return_value = session
    return ort


class TestDetection:
    def test_face_detected(self):
        assert not Detection().face_detected
        assert Detection(landmarks=relaxed_face()).face_detected

    def test_softmax(self):
        probs = softmax(np.array([1.0, 2.0, 3.0, 1000.0]))
        assert np.all(np.isfinite(probs))
        assert probs.sum() == pytest.approx(1.0)
        assert np.argmax(probs) == 3


class TestOnnxExpressionClassifier:
    def test_missing_model(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            OnnxExpressionClassifier(str(tmp_path / "missing.onnx"))

    @pytest.mark.parametrize("shape", [[1, 1, 48, 48], [1, 48, 48, 1], ["batch", 1, 64, 64]])
    def test_predict_maps_fer_labels(self, tmp_path, shape):
        pytest.importorskip("cv2")
        model = tmp_path / "fer.onnx"
        model.write_bytes(b"")

        logits = [0.0, 0.0, 0.0, 5.0, 0.0, 0.0, 0.0]  # "happy"
        ort = fake_onnxruntime(shape, logits)
        with patch.dict(sys.modules, {"onnxruntime": ort}):
            classifier = OnnxExpressionClassifier(str(model))

        frame = np.random.default_rng(0).integers(0, 255, (240, 320, 3), dtype=np.uint8)
        result = classifier.predict(frame, relaxed_face())

        assert set(result) == set(FER2013_LABELS)
        assert max(result, key=result.get) == "happy"
        assert sum(result.values()) == pytest.approx(1.0, abs=1e-6)

        batch = ort.InferenceSession.return_value.run.call_args[0][1]["input"]
        assert batch.ndim == 4 and batch.shape[0] == 1
        assert batch.max() <= 1.0

    def test_unknown_classes_dropped(self, tmp_path):
        pytest.importorskip("cv2")
        model = tmp_path / "fer.onnx"
        model.write_bytes(b"")

        labels = ("angry", "contempt", "happy")
        ort = fake_onnxruntime([1, 1, 48, 48], [0.2, 0.5, 0.3])
        with patch.dict(sys.modules, {"onnxruntime": ort}):
            classifier = OnnxExpressionClassifier(str(model), labels=labels, apply_softmax=False)

        frame = np.zeros((240, 320, 3), dtype=np.uint8)
        result = classifier.predict(frame, relaxed_face())
        assert result == pytest.approx({"angry": 0.2, "happy": 0.3})

    def test_degenerate_crop_returns_none(self, tmp_path):
        pytest.importorskip("cv2")
        model = tmp_path / "fer.onnx"
        model.write_bytes(b"")

        ort = fake_onnxruntime([1, 1, 48, 48], [0.0] * 7)
        with patch.dict(sys.modules, {"onnxruntime": ort}):
            classifier = OnnxExpressionClassifier(str(model))

        frame = np.zeros((240, 320, 3), dtype=np.uint8)
        assert classifier.predict(frame, np.zeros((68, 2))) is None

    @pytest.mark.parametrize("shape", [[1, 48, 48], [48, 48], [1, 1, 1, 48, 48]])
    def test_non_4d_input_shape_rejected(self, tmp_path, shape):
        pytest.importorskip("cv2")
        model = tmp_path / "fer.onnx"
        model.write_bytes(b"")

        ort = fake_onnxruntime(shape, [0.0] * 7)
        with patch.dict(sys.modules, {"onnxruntime": ort}):
            with pytest.raises(ValueError, match="4-D model input"):
                OnnxExpressionClassifier(str(model))
