import unittest

import numpy as np

from detect_kit.errors import InvalidDimensions, UnsupportedTensorShape
from detect_kit.postprocess import DecodeConfig, DetectionDecoder
from detect_kit.types import Detection, LetterboxMeta


IDENTITY = LetterboxMeta.identity(640)


class TestDetectionDecoder(unittest.TestCase):
    def test_single_combined_box(self) -> None:
        # [1, 1, 6]: six fields read as box + objectness + one class.
        raw = np.array([[[320, 320, 100, 50, 1.0, 0.9]]], dtype=np.float32)
        dets = DetectionDecoder().decode({"output0": raw}, (640, 640), IDENTITY)
        self.assertEqual(len(dets), 1)
        d = dets[0]
        self.assertEqual(d.as_xyxy(), (270.0, 295.0, 370.0, 345.0))
        self.assertAlmostEqual(d.score, 0.9, places=6)
        self.assertEqual(d.class_id, 0)

    def test_extra_outputs_do_not_block_decoding(self) -> None:
        raw = np.array([[[320, 320, 100, 50, 1.0, 0.9]]], dtype=np.float32)
        outputs = {"output0": raw, "aux": np.zeros((1, 3, 2, 2, 6)), "n": np.array(1.0)}
        dets = DetectionDecoder().decode(outputs, (640, 640), IDENTITY)
        self.assertEqual(len(dets), 1)
        self.assertEqual(dets[0].as_xyxy(), (270.0, 295.0, 370.0, 345.0))

    def test_single_class_without_objectness(self) -> None:
        # [N, no] with no = 5: four box fields + one class score.
        raw = np.array([[320, 320, 100, 50, 0.9]], dtype=np.float64)
        dets = DetectionDecoder().decode({"output0": raw}, (640, 640), IDENTITY)
        self.assertEqual(dets, [Detection(x1=270.0, y1=295.0, x2=370.0, y2=345.0, score=0.9, class_id=0)])

    def test_channels_first_logits_with_letterbox(self) -> None:
        # (4 + C, A) layout, raw logits, 1280x720 frame letterboxed into 640.
        # A 3-name table marks the 7 fields as box + 3 classes (no objectness).
        a = 5000
        p = np.full((4 + 3, a), -8.0, dtype=np.float32)
        p[0:4, :] = np.array([[320], [320], [100], [50]])
        p[4:, 0] = [-2.0, 4.0, -1.0]  # anchor 0: class 1
        p[4:, 1] = [3.0, -3.0, -3.0]  # anchor 1: class 0, same box
        meta = LetterboxMeta(scale=0.5, pad_x=0.0, pad_y=140.0, input_size=640, new_w=640, new_h=360)
        dets = DetectionDecoder(class_names=["a", "b", "c"]).decode({"output0": p[None, ...]}, (1280, 720), meta)

        self.assertEqual([d.class_id for d in dets], [1, 0])
        self.assertAlmostEqual(dets[0].score, 1.0 / (1.0 + np.exp(-4.0)), places=5)
        for d in dets:
            self.assertEqual(d.as_xyxy(), (540.0, 310.0, 740.0, 410.0))

    def test_split_outputs_with_nms(self) -> None:
        boxes = np.array([[[100, 100, 50, 50], [102, 101, 50, 50], [400, 400, 60, 60]]], dtype=np.float32)
        scores = np.array([[[0.9, 0.0], [0.7, 0.0], [0.1, 0.8]]], dtype=np.float32)
        dets = DetectionDecoder().decode({"scores": scores, "boxes": boxes}, (640, 640), IDENTITY)
        self.assertEqual([(d.class_id, round(d.score, 2)) for d in dets], [(0, 0.9), (1, 0.8)])

    def test_class_filter(self) -> None:
        boxes = np.array([[[100, 100, 50, 50], [400, 400, 60, 60]]], dtype=np.float32)
        scores = np.array([[[0.9, 0.0], [0.1, 0.8]]], dtype=np.float32)
        decoder = DetectionDecoder(DecodeConfig(class_ids=[1]))
        dets = decoder.decode({"boxes": boxes, "scores": scores}, (640, 640), IDENTITY)
        self.assertEqual([d.class_id for d in dets], [1])

    def test_class_table_resolves_objectness(self) -> None:
        # 6 fields with a 2-name table: no objectness, two classes.
        raw = np.array([[320, 320, 100, 50, 0.3, 0.6]], dtype=np.float64)
        dets = DetectionDecoder(class_names=["cat", "dog"]).decode({"output0": raw}, (640, 640), IDENTITY)
        self.assertEqual(len(dets), 1)
        self.assertEqual(dets[0].class_id, 1)
        self.assertAlmostEqual(dets[0].score, 0.6)

    def test_empty_class_space_is_no_detections(self) -> None:
        raw = np.zeros((10, 4), dtype=np.float32)
        self.assertEqual(DetectionDecoder().decode({"output0": raw}, (640, 640), IDENTITY), [])

    def test_boxes_outside_frame_dropped(self) -> None:
        raw = np.array([[700, 700, 20, 20, 0.9], [320, 320, 20, 20, 0.9]], dtype=np.float64)
        dets = DetectionDecoder().decode({"output0": raw}, (640, 640), IDENTITY)
        self.assertEqual(len(dets), 1)
        for d in dets:
            self.assertGreater(d.x2, d.x1)
            self.assertGreater(d.y2, d.y1)

    def test_max_detections(self) -> None:
        rows = [[20 + 30 * i, 20, 10, 10, 0.5 + i * 0.01] for i in range(20)]
        decoder = DetectionDecoder(DecodeConfig(max_detections=5))
        dets = decoder.decode({"output0": np.array(rows)}, (640, 640), IDENTITY)
        self.assertEqual(len(dets), 5)
        self.assertEqual(dets[0].x1, 20 + 30 * 19 - 5)

    def test_unsupported_shape_propagates(self) -> None:
        with self.assertRaises(UnsupportedTensorShape):
            DetectionDecoder().decode({"output0": np.zeros((1, 1, 10, 85))}, (640, 640), IDENTITY)

    def test_invalid_frame_size(self) -> None:
        with self.assertRaises(InvalidDimensions):
            DetectionDecoder().decode({"output0": np.zeros((1, 5))}, (0, 640), IDENTITY)

    def test_raw_outputs_not_modified(self) -> None:
        raw = np.array([[[320, 320, 100, 50, 2.0, -1.0]]], dtype=np.float32)
        before = raw.copy()
        DetectionDecoder(DecodeConfig(score_threshold=0.0)).decode({"output0": raw}, (640, 640), IDENTITY)
        self.assertTrue(np.array_equal(raw, before))

    def test_config_validation(self) -> None:
        with self.assertRaises(ValueError):
            DecodeConfig(score_threshold=1.5)
        with self.assertRaises(ValueError):
            DecodeConfig(max_detections=0)


if __name__ == "__main__":
    unittest.main()
