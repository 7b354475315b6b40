from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import numpy as np

from yolo_postproc.postprocess import YoloPostConfig
from yolo_postproc.runtime import YoloModel, find_project_root, load_model, resolve_path
from yolo_postproc.types import YoloTask


class FakeEngine:
    """Stands in for an inference session: fixed outputs plus export metadata."""

    def __init__(self, outputs, metadata, input_size=(64, 64)):
        self._outputs = outputs
        self._metadata = metadata
        self.input_size = input_size
        self.output_shapes = [tuple(o.shape) for o in outputs]
        self.calls = 0

    def metadata(self):
        return dict(self._metadata)

    def infer(self, blob):
        self.calls += 1
        return list(self._outputs)


class TestYoloModel(unittest.TestCase):
    def test_segment_model_from_metadata(self) -> None:
        preds = np.zeros((1, 8, 4), dtype=np.float32)
        preds[0, :, 0] = [32, 32, 16, 16, 0.1, 0.9, 1.0, 0.0]
        proto = np.zeros((1, 2, 16, 16), dtype=np.float32)
        proto[0, 0] = 1.0
        engine = FakeEngine([preds, proto], {"task": "segment", "names": "{0: 'cat', 1: 'dog'}"})

        model = YoloModel(engine, YoloPostConfig(confs=(0.25,)))
        self.assertIs(model.task, YoloTask.SEGMENT)
        self.assertEqual(model.names, ["cat", "dog"])
        self.assertEqual(model.post.nm, 2)

        (res,) = model(np.zeros((1, 3, 64, 64), dtype=np.float32), orig_sizes=[(128, 128)])
        self.assertEqual(engine.calls, 1)
        self.assertEqual(len(res.detections), 1)
        det = res.detections[0]
        self.assertEqual((det.label, det.as_xywh()), ("dog", (48.0, 48.0, 32.0, 32.0)))
        self.assertEqual(res.masks[0].shape, (128, 128))
        self.assertEqual(int(res.masks[0][64, 64]), 255)

    def test_dynamic_input_size_needs_ratios(self) -> None:
        preds = np.zeros((1, 5, 4), dtype=np.float32)
        preds[0, :, 0] = [10, 10, 4, 4, 0.9]
        engine = FakeEngine([preds], {"names": "{0: 'a'}"}, input_size=(-1, -1))
        model = YoloModel(engine, YoloPostConfig(confs=(0.25,)), task="detect")
        self.assertIsNone(model.input_size)
        (res,) = model(np.zeros((1, 3, 32, 32), dtype=np.float32), orig_sizes=[(64, 64)], ratios=[0.5])
        self.assertEqual(res.detections[0].as_xywh(), (16.0, 16.0, 8.0, 8.0))


class TestPaths(unittest.TestCase):
    def test_find_project_root_and_resolve(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            root = Path(d).resolve()
            (root / "pyproject.toml").write_text("", encoding="utf-8")
            nested = root / "models" / "v8"
            nested.mkdir(parents=True)
            self.assertEqual(find_project_root(nested), root)
            self.assertEqual(resolve_path("models/a.onnx", root=root), root / "models" / "a.onnx")
            self.assertEqual(resolve_path(root / "b.onnx"), root / "b.onnx")

    def test_unknown_extension(self) -> None:
        with self.assertRaises(ValueError):
            load_model("weights.bin", root=tempfile.gettempdir())


if __name__ == "__main__":
    unittest.main()
