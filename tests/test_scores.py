import unittest

import numpy as np

from detect_kit.errors import EmptyClassSpace
from detect_kit.layout import CombinedLayout, SplitLayout
from detect_kit.scores import (
    Activation,
    decode_combined,
    decode_split,
    detect_activation,
    maybe_sigmoid,
    maybe_sigmoid_rows,
    resolve_combined_fields,
    sigmoid,
)


class TestActivation(unittest.TestCase):
    def test_probabilities_left_unchanged(self) -> None:
        v = np.array([0.0, 0.25, 1.0])
        self.assertIs(detect_activation(v), Activation.PROBABILITY)
        self.assertTrue(np.array_equal(maybe_sigmoid(v), v))

    def test_out_of_range_vector_gets_logistic_transform(self) -> None:
        v = np.array([-1.0, 2.0, 0.5])
        self.assertIs(detect_activation(v), Activation.RAW)
        out = maybe_sigmoid(v)
        expected = 1.0 / (1.0 + np.exp(-v))
        self.assertTrue(np.allclose(out, expected))
        # The whole vector is transformed, including the in-range value.
        self.assertAlmostEqual(float(out[2]), 0.6224593312, places=8)

    def test_rows_decided_independently(self) -> None:
        m = np.array([[0.2, 0.7], [-3.0, 3.0]])
        out = maybe_sigmoid_rows(m)
        self.assertTrue(np.allclose(out[0], [0.2, 0.7]))
        self.assertTrue(np.allclose(out[1], sigmoid(np.array([-3.0, 3.0]))))

    def test_sigmoid_handles_extreme_logits(self) -> None:
        out = sigmoid(np.array([-1000.0, 1000.0]))
        self.assertEqual(out.tolist(), [0.0, 1.0])


class TestCombinedFields(unittest.TestCase):
    def test_size_guess(self) -> None:
        f = resolve_combined_fields(85)
        self.assertTrue(f.has_objectness)
        self.assertEqual((f.class_count, f.class_start), (80, 5))
        f = resolve_combined_fields(5)
        self.assertFalse(f.has_objectness)
        self.assertEqual((f.class_count, f.class_start), (1, 4))

    def test_class_table_overrides_guess(self) -> None:
        f = resolve_combined_fields(84, num_class_names=80)
        self.assertFalse(f.has_objectness)
        self.assertEqual(f.class_count, 80)
        f = resolve_combined_fields(85, num_class_names=80)
        self.assertTrue(f.has_objectness)
        self.assertEqual(f.class_count, 80)
        # Table length that matches neither layout leaves the size guess alone.
        f = resolve_combined_fields(85, num_class_names=3)
        self.assertTrue(f.has_objectness)
        self.assertEqual(f.class_count, 80)

    def test_empty_class_space(self) -> None:
        with self.assertRaises(EmptyClassSpace):
            resolve_combined_fields(4)
        with self.assertRaises(EmptyClassSpace):
            resolve_combined_fields(3)


class TestDecodeSplit(unittest.TestCase):
    def test_best_class_and_threshold(self) -> None:
        layout = SplitLayout(
            boxes=np.array([[10, 10, 4, 4], [20, 20, 4, 4], [30, 30, 4, 4]], dtype=np.float64),
            scores=np.array([[0.1, 0.9], [0.2, 0.1], [0.6, 0.3]], dtype=np.float64),
        )
        c = decode_split(layout, 0.25)
        self.assertEqual(len(c), 2)
        self.assertEqual(c.class_ids.tolist(), [1, 0])
        self.assertTrue(np.allclose(c.scores, [0.9, 0.6]))
        self.assertEqual(c.boxes[1].tolist(), [30, 30, 4, 4])

    def test_logits_are_activated(self) -> None:
        layout = SplitLayout(boxes=np.zeros((1, 4)), scores=np.array([[-5.0, 2.0]]))
        c = decode_split(layout, 0.25)
        self.assertEqual(c.class_ids.tolist(), [1])
        self.assertAlmostEqual(float(c.scores[0]), float(sigmoid(np.array(2.0))))


class TestDecodeCombined(unittest.TestCase):
    def test_objectness_multiplies_class_prob(self) -> None:
        # (N, 5 + C): [cx, cy, w, h, obj, class_scores...]
        data = np.array(
            [
                [50, 60, 10, 20, 0.5, 0.1, 0.9, 0.2],  # class 1 (0.45)
                [55, 66, 12, 18, 0.8, 0.7, 0.1, 0.2],  # class 0 (0.56)
                [55, 66, 12, 18, 0.1, 0.7, 0.1, 0.2],  # 0.07 < threshold
            ],
            dtype=np.float64,
        )
        c = decode_combined(CombinedLayout(data=data), 0.25)
        self.assertTrue(np.allclose(c.scores, [0.45, 0.56]))
        self.assertEqual(c.class_ids.tolist(), [1, 0])

    def test_objectness_logit_activated_per_value(self) -> None:
        data = np.array([[50, 60, 10, 20, 3.0, 0.2, 0.8]], dtype=np.float64)
        c = decode_combined(CombinedLayout(data=data), 0.25)
        self.assertAlmostEqual(float(c.scores[0]), float(sigmoid(np.array(3.0))) * 0.8)
        self.assertEqual(c.class_ids.tolist(), [1])

    def test_class_table_without_objectness(self) -> None:
        # 4 + 3 fields with a 3-class table: column 4 is a class score, not objectness.
        data = np.array([[50, 60, 10, 20, 0.3, 0.2, 0.8]], dtype=np.float64)
        c = decode_combined(CombinedLayout(data=data), 0.25, num_class_names=3)
        self.assertEqual(c.class_ids.tolist(), [2])
        self.assertAlmostEqual(float(c.scores[0]), 0.8)

    def test_no_class_columns_raises(self) -> None:
        with self.assertRaises(EmptyClassSpace):
            decode_combined(CombinedLayout(data=np.zeros((3, 4))), 0.25)


if __name__ == "__main__":
    unittest.main()
