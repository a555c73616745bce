import unittest

import numpy as np

from detect_kit.nms import NMSConfig, box_iou, nms, suppress
from detect_kit.types import Detection


def _random_detections(seed: int, n: int = 200, n_classes: int = 3):
    rng = np.random.default_rng(seed)
    x1y1 = rng.uniform(0, 300, size=(n, 2))
    wh = rng.uniform(10, 120, size=(n, 2))
    scores = rng.uniform(0.0, 1.0, size=n)
    classes = rng.integers(0, n_classes, size=n)
    return [
        Detection(x1=float(a), y1=float(b), x2=float(a + w), y2=float(b + h), score=float(s), class_id=int(c))
        for (a, b), (w, h), s, c in zip(x1y1, wh, scores, classes)
    ]


class TestIoU(unittest.TestCase):
    def test_basic_overlap(self) -> None:
        self.assertAlmostEqual(box_iou([0, 0, 100, 100], [0, 0, 100, 90]), 0.9)
        self.assertAlmostEqual(box_iou([0, 0, 10, 10], [20, 20, 30, 30]), 0.0)

    def test_zero_union_is_zero(self) -> None:
        self.assertEqual(box_iou([5, 5, 5, 5], [5, 5, 5, 5]), 0.0)


class TestSuppress(unittest.TestCase):
    def test_keeps_higher_score_of_overlapping_pair(self) -> None:
        low = Detection(x1=0, y1=0, x2=100, y2=90, score=0.6, class_id=0)
        high = Detection(x1=0, y1=0, x2=100, y2=100, score=0.8, class_id=0)
        kept = suppress([low, high], iou_threshold=0.45)
        self.assertEqual(kept, [high])

    def test_other_classes_never_suppressed(self) -> None:
        a = Detection(x1=0, y1=0, x2=100, y2=100, score=0.8, class_id=0)
        b = Detection(x1=0, y1=0, x2=100, y2=100, score=0.6, class_id=1)
        self.assertEqual(suppress([a, b]), [a, b])

    def test_iou_equal_to_threshold_is_kept(self) -> None:
        a = Detection(x1=0, y1=0, x2=100, y2=100, score=0.8, class_id=0)
        b = Detection(x1=0, y1=0, x2=100, y2=50, score=0.6, class_id=0)  # IoU 0.5
        self.assertEqual(len(suppress([a, b], iou_threshold=0.5)), 2)
        self.assertEqual(len(suppress([a, b], iou_threshold=0.49)), 1)

    def test_ties_keep_input_order(self) -> None:
        dets = [Detection(x1=i * 200, y1=0, x2=i * 200 + 10, y2=10, score=0.5, class_id=0) for i in range(5)]
        self.assertEqual(suppress(dets), dets)
        keep = nms(np.array([d.as_xyxy() for d in dets]), np.full(5, 0.5), np.zeros(5))
        self.assertEqual(keep.tolist(), [0, 1, 2, 3, 4])

    def test_max_output_stops_acceptance(self) -> None:
        dets = [
            Detection(x1=i * 200, y1=0, x2=i * 200 + 10, y2=10, score=1.0 - i * 0.1, class_id=0) for i in range(5)
        ]
        kept = suppress(dets, max_output=3)
        self.assertEqual(kept, dets[:3])

    def test_no_same_class_overlap_above_threshold(self) -> None:
        for seed in range(5):
            kept = suppress(_random_detections(seed), iou_threshold=0.45)
            for i, a in enumerate(kept):
                for b in kept[i + 1 :]:
                    if a.class_id == b.class_id:
                        self.assertLessEqual(box_iou(a.as_xyxy(), b.as_xyxy()), 0.45)

    def test_idempotent(self) -> None:
        for seed in range(5):
            once = suppress(_random_detections(seed), iou_threshold=0.45)
            twice = suppress(once, iou_threshold=0.45)
            self.assertEqual(once, twice)

    def test_output_sorted_by_score(self) -> None:
        kept = suppress(_random_detections(11))
        scores = [d.score for d in kept]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_empty(self) -> None:
        self.assertEqual(suppress([]), [])
        self.assertEqual(nms(np.zeros((0, 4)), np.zeros((0,)), cfg=NMSConfig()).size, 0)


if __name__ == "__main__":
    unittest.main()
