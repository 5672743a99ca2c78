"""ONNX Runtime backed food classifier."""

import json
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import onnxruntime as ort

from meal_analyzer.domain.foods import DEFAULT_FOOD_LABELS
from meal_analyzer.services.classifier import ClassifierModel

_logger = logging.getLogger(__name__)


@dataclass
class OnnxClassifierModel(ClassifierModel):
    """Classifier session with its label list."""

    session: ort.InferenceSession
    labels: Sequence[str]

    @classmethod
    def load(
        cls, model_path: str | None, labels_path: str | None = None
    ) -> "OnnxClassifierModel | None":
        """Load the model, or return None when it is missing or broken."""
        if not model_path or not os.path.exists(model_path):
            _logger.warning(
                "Classifier model not found at %s, local classification disabled",
                model_path,
            )
            return None
        try:
            session = ort.InferenceSession(
                model_path, providers=["CPUExecutionProvider"]
            )
        except Exception:
            _logger.exception("Failed to initialize classifier model %s", model_path)
            return None
        return cls(session=session, labels=load_labels(labels_path))

    def predict(self, tensor: np.ndarray) -> Sequence[float]:
        """Run inference on an HxWx3 tensor and return per-label probabilities."""
        model_input = self.session.get_inputs()[0]
        batch = tensor.astype(np.float32)[None]
        shape = model_input.shape
        # Channels-first models, e.g. (1, 3, 224, 224)
        if len(shape) == 4 and shape[1] == 3:
            batch = batch.transpose(0, 3, 1, 2)
        outputs = self.session.run(None, {model_input.name: batch})[0]
        scores = np.asarray(outputs, dtype=np.float32).reshape(-1)
        if scores.size and (scores.min() < 0.0 or scores.max() > 1.0):
            exp = np.exp(scores - scores.max())
            scores = exp / exp.sum()
        return scores[: len(self.labels)].tolist()


def load_labels(labels_path: str | None) -> list[str]:
    """Read labels from a JSON list/mapping or a newline-separated text file."""
    if not labels_path or not os.path.exists(labels_path):
        _logger.warning("Classifier labels not found, using default food categories")
        return list(DEFAULT_FOOD_LABELS)
    with open(labels_path, encoding="utf-8") as handle:
        content = handle.read()
    if labels_path.endswith(".json"):
        data = json.loads(content)
        if isinstance(data, dict):
            return [str(data[key]) for key in sorted(data, key=int)]
        return [str(label) for label in data]
    return [line.strip() for line in content.splitlines() if line.strip()]
