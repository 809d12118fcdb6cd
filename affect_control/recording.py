"""
Session recording and JSON-lines serialization of detector output.

A recording captures, per frame, exactly what the engine consumes (the
expression distribution, the landmarks and the cycle time), so a session
can be replayed through a fresh engine with identical results.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, TextIO, Union

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class FrameRecord:
    """
    One frame of detector output.

    Attributes:
        timestamp_ms: Cycle time in milliseconds.
        expressions: Base expression distribution, or None (no face).
        landmarks: Landmark array of shape (N, 2), or None (no face).
    """

    timestamp_ms: float
    expressions: Optional[Dict[str, float]] = None
    landmarks: Optional[np.ndarray] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the record to a dictionary for JSON serialization.

        Returns:
            Dictionary representation of the record.
        """
        landmarks = None
        if self.landmarks is not None:
            landmarks = np.asarray(self.landmarks, dtype=np.float64)[:, :2].tolist()
        return {
            "timestamp_ms": self.timestamp_ms,
            "expressions": dict(self.expressions) if self.expressions is not None else None,
            "landmarks": landmarks,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FrameRecord":
        """
        Create a FrameRecord from a dictionary.

        Raises:
            KeyError: If timestamp_ms is missing.
        """
        landmarks = data.get("landmarks")
        expressions = data.get("expressions")
        return cls(
            timestamp_ms=float(data["timestamp_ms"]),
            expressions={k: float(v) for k, v in expressions.items()} if expressions else None,
            landmarks=np.asarray(landmarks, dtype=np.float64) if landmarks is not None else None,
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, line: str) -> "FrameRecord":
        return cls.from_dict(json.loads(line))


class RecordingWriter:
    """
    Append FrameRecords to a JSON-lines file.

    Usage:
        with RecordingWriter("session.jsonl") as writer:
            writer.write(FrameRecord(now, expressions, landmarks))
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._file: Optional[TextIO] = None
        self.count = 0

    def open(self) -> None:
        if self._file is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, "w")
            logger.info(f"Recording to {self.path}")

    def write(self, record: FrameRecord) -> None:
        if self._file is None:
            self.open()
        self._file.write(record.to_json() + "\n")
        self.count += 1

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
            logger.info(f"Recorded {self.count} frames to {self.path}")

    def __enter__(self) -> "RecordingWriter":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def iter_recording(path: Union[str, Path]) -> Iterator[FrameRecord]:
    """
    Yield FrameRecords from a JSON-lines file, skipping blank lines.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If a line is not a valid record.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Recording not found: {path}")

    with open(path, "r") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield FrameRecord.from_json(line)
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                raise ValueError(f"{path}:{line_no}: invalid frame record: {e}")


def load_recording(path: Union[str, Path]) -> List[FrameRecord]:
    return list(iter_recording(path))
