import unittest

import numpy as np

from yolo_postproc.errors import ConfigurationError
from yolo_postproc.nms import NMSConfig, nms, suppress
from yolo_postproc.types import Candidate, Detection


def _cand(x, y, w, h, conf, cls=0):
    return Candidate(Detection(x=x, y=y, width=w, height=h, class_id=cls, confidence=conf), None, None)


class TestNms(unittest.TestCase):
    def test_overlap_0_6_suppressed_at_0_5(self) -> None:
        a = _cand(0, 0, 10, 10, 0.8)
        b = _cand(0, 0, 10, 6, 0.9)
        kept = suppress([a, b], NMSConfig(iou_threshold=0.5))
        self.assertEqual(kept, [b])

    def test_overlap_0_6_kept_at_0_7(self) -> None:
        a = _cand(0, 0, 10, 10, 0.8)
        b = _cand(0, 0, 10, 6, 0.9)
        kept = suppress([a, b], NMSConfig(iou_threshold=0.7))
        self.assertEqual(len(kept), 2)
        self.assertIn(a, kept)
        self.assertIn(b, kept)

    def test_agnostic_across_classes(self) -> None:
        a = _cand(0, 0, 10, 10, 0.9, cls=0)
        b = _cand(1, 1, 10, 10, 0.8, cls=1)
        self.assertEqual(suppress([a, b], NMSConfig(iou_threshold=0.5)), [a])

    def test_class_aware(self) -> None:
        a = _cand(0, 0, 10, 10, 0.9, cls=0)
        b = _cand(1, 1, 10, 10, 0.8, cls=1)
        c = _cand(1, 0, 10, 10, 0.7, cls=0)
        kept = suppress([a, b, c], NMSConfig(iou_threshold=0.5, class_agnostic=False))
        self.assertEqual(kept, [a, b])

    def test_idempotent(self) -> None:
        rng = np.random.default_rng(7)
        cands = []
        for i in range(60):
            x, y = rng.uniform(0, 200, size=2)
            w, h = rng.uniform(10, 60, size=2)
            cands.append(_cand(float(x), float(y), float(w), float(h), float(rng.uniform(0.3, 1.0)), i % 3))
        cfg = NMSConfig(iou_threshold=0.45)
        once = suppress(cands, cfg)
        twice = suppress(once, cfg)
        self.assertEqual(once, twice)
        for i, p in enumerate(once):
            for q in once[i + 1 :]:
                self.assertLessEqual(p.detection.iou(q.detection), 0.45)

    def test_ties_keep_first_index(self) -> None:
        boxes = np.array([[0, 0, 10, 10], [0, 0, 10, 10]], dtype=np.float64)
        scores = np.array([0.5, 0.5])
        keep = nms(boxes, scores, NMSConfig(iou_threshold=0.5))
        self.assertEqual(keep.tolist(), [0])

    def test_max_detections(self) -> None:
        cands = [_cand(i * 20.0, 0, 10, 10, 0.9 - i * 0.1) for i in range(5)]
        kept = suppress(cands, NMSConfig(max_detections=2))
        self.assertEqual(kept, cands[:2])

    def test_empty(self) -> None:
        self.assertEqual(suppress([], NMSConfig()), [])
        self.assertEqual(nms(np.zeros((0, 4)), np.zeros((0,)), NMSConfig()).size, 0)

    def test_invalid_config(self) -> None:
        with self.assertRaises(ConfigurationError):
            NMSConfig(iou_threshold=1.5)
        with self.assertRaises(ConfigurationError):
            NMSConfig(max_detections=0)


if __name__ == "__main__":
    unittest.main()
