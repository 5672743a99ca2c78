"""Tests for the ONNX classifier adapter."""

import json
from dataclasses import dataclass, field

import numpy as np
import pytest

from meal_analyzer.adapters.onnx_classifier import OnnxClassifierModel, load_labels
from meal_analyzer.domain.foods import DEFAULT_FOOD_LABELS


@dataclass
class _FakeInput:
    name: str
    shape: list[object]


@dataclass
class FakeSession:
    shape: list[object]
    outputs: list[float]
    fed: dict[str, np.ndarray] = field(default_factory=dict)

    def get_inputs(self) -> list[_FakeInput]:
        return [_FakeInput("pixel_values", self.shape)]

    def run(self, _names, feed: dict[str, np.ndarray]) -> list[np.ndarray]:
        self.fed = feed
        return [np.asarray([self.outputs], dtype=np.float32)]


def test_predict_transposes_channels_first_and_applies_softmax() -> None:
    session = FakeSession(shape=[1, 3, 224, 224], outputs=[2.0, 0.0, -1.0])
    model = OnnxClassifierModel(session=session, labels=["apple", "rice", "soup"])

    scores = model.predict(np.zeros((224, 224, 3), dtype=np.float32))

    assert session.fed["pixel_values"].shape == (1, 3, 224, 224)
    assert sum(scores) == pytest.approx(1.0)
    assert scores[0] > scores[1] > scores[2]


def test_predict_keeps_probabilities_for_channels_last() -> None:
    session = FakeSession(shape=["batch", 224, 224, 3], outputs=[0.7, 0.2, 0.1, 0.0])
    model = OnnxClassifierModel(session=session, labels=["apple", "rice", "soup"])

    scores = model.predict(np.zeros((224, 224, 3), dtype=np.float32))

    assert session.fed["pixel_values"].shape == (1, 224, 224, 3)
    assert scores == pytest.approx([0.7, 0.2, 0.1])


def test_load_returns_none_when_model_missing(tmp_path) -> None:
    assert OnnxClassifierModel.load(None) is None
    assert OnnxClassifierModel.load(str(tmp_path / "missing.onnx")) is None


def test_load_labels_formats(tmp_path) -> None:
    mapping = tmp_path / "labels.json"
    mapping.write_text(json.dumps({"1": "rice", "0": "apple", "10": "soup"}))
    listing = tmp_path / "list.json"
    listing.write_text(json.dumps(["apple", "rice"]))
    text = tmp_path / "labels.txt"
    text.write_text("apple\n\nrice\n")

    assert load_labels(str(mapping)) == ["apple", "rice", "soup"]
    assert load_labels(str(listing)) == ["apple", "rice"]
    assert load_labels(str(text)) == ["apple", "rice"]
    assert load_labels(None) == list(DEFAULT_FOOD_LABELS)
