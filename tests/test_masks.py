import unittest

import numpy as np

from yolo_postproc.errors import ShapeError
from yolo_postproc.masks import crop_to_box, reconstruct_mask
from yolo_postproc.types import Detection


def _det(x, y, w, h):
    return Detection(x=x, y=y, width=w, height=h, class_id=0, confidence=0.9)


class TestReconstructMask(unittest.TestCase):
    def setUp(self) -> None:
        self.proto = np.zeros((2, 160, 160), dtype=np.float32)
        self.proto[0] = 1.0

    def test_raster_matches_original_size(self) -> None:
        for w, h in [(640, 480), (100, 300), (33, 17)]:
            mask = reconstruct_mask(np.array([1.0, 0.0]), self.proto, _det(0, 0, w, h), w, h)
            self.assertEqual(mask.shape, (h, w))
            self.assertEqual(mask.dtype, np.uint8)

    def test_cropped_to_box(self) -> None:
        mask = reconstruct_mask(np.array([1.0, 0.0]), self.proto, _det(100, 50, 200, 100), 640, 480)
        self.assertEqual(mask[50, 100], 255)
        self.assertEqual(mask[150, 300], 255)
        self.assertEqual(mask[49, 100], 0)
        self.assertEqual(mask[50, 99], 0)
        self.assertEqual(mask[151, 300], 0)
        self.assertEqual(mask[150, 301], 0)
        self.assertEqual(int(np.count_nonzero(mask)), 201 * 101)

    def test_padding_region_is_ignored(self) -> None:
        # 640x480 into a 160x160 canvas leaves rows 120.. as padding
        proto = np.zeros((1, 160, 160), dtype=np.float32)
        proto[0, 120:, :] = 1.0
        mask = reconstruct_mask(np.array([1.0]), proto, _det(0, 0, 640, 480), 640, 480)
        self.assertEqual(int(mask.max()), 0)

    def test_soft_values_and_threshold(self) -> None:
        proto = np.full((1, 8, 8), 0.4, dtype=np.float32)
        soft = reconstruct_mask(np.array([1.0]), proto, _det(0, 0, 8, 8), 8, 8)
        self.assertEqual(int(soft[4, 4]), 102)
        hard = reconstruct_mask(np.array([1.0]), proto, _det(0, 0, 8, 8), 8, 8, threshold=0.3)
        self.assertEqual(set(np.unique(hard).tolist()), {255})
        hard = reconstruct_mask(np.array([1.0]), proto, _det(0, 0, 8, 8), 8, 8, threshold=0.5)
        self.assertEqual(set(np.unique(hard).tolist()), {0})

    def test_coefficient_mismatch(self) -> None:
        with self.assertRaises(ShapeError):
            reconstruct_mask(np.array([1.0, 0.0, 0.0]), self.proto, _det(0, 0, 10, 10), 64, 64)

    def test_bad_prototype_rank(self) -> None:
        with self.assertRaises(ShapeError):
            reconstruct_mask(np.array([1.0]), np.zeros((160, 160), dtype=np.float32), _det(0, 0, 10, 10), 64, 64)


class TestCropToBox(unittest.TestCase):
    def test_box_past_edge(self) -> None:
        mask = np.full((10, 10), 255, dtype=np.uint8)
        out = crop_to_box(mask, _det(5, 5, 20, 20))
        self.assertEqual(int(np.count_nonzero(out)), 25)
        self.assertEqual(int(np.count_nonzero(mask)), 100)

    def test_box_outside(self) -> None:
        mask = np.full((10, 10), 255, dtype=np.uint8)
        self.assertEqual(int(np.count_nonzero(crop_to_box(mask, _det(10, 0, 5, 5)))), 0)


if __name__ == "__main__":
    unittest.main()
