import unittest

import numpy as np

from detection_kit.errors import InvalidArgumentError, ShapeMismatchError
from detection_kit.labels import synthetic_labels
from detection_kit.letterbox import compute_params
from detection_kit.nms import suppress
from detection_kit.postprocess import CandidateDecoder, CandidateStatus, DecoderConfig, decode
from detection_kit.types import UNKNOWN_LABEL


NUM_CLASSES = 80
LABELS = synthetic_labels(NUM_CLASSES)


def _row(cx, cy, w, h, scores=None, num_classes=NUM_CLASSES):
    row = np.zeros((4 + num_classes,), dtype=np.float32)
    row[:4] = [cx, cy, w, h]
    for class_id, score in (scores or {}).items():
        row[4 + class_id] = score
    return row


class TestCandidateDecoder(unittest.TestCase):
    def test_single_row_end_to_end(self) -> None:
        tensor = np.stack([_row(320, 320, 100, 100, {3: 0.9})])
        params = compute_params(640, 640, 640, aspect_ratio_correction=False)
        dets = decode(tensor, params, LABELS, confidence_threshold=0.5)
        self.assertEqual(len(dets), 1)
        det = dets[0]
        self.assertTrue(np.allclose(det.as_xyxy(), (270, 270, 370, 370)))
        self.assertEqual(det.class_id, 3)
        self.assertEqual(det.label, "class_3")
        self.assertAlmostEqual(det.confidence, 0.9, places=6)

    def test_batch_axis_dropped(self) -> None:
        tensor = np.stack([_row(320, 320, 100, 100, {3: 0.9})])[None, ...]
        params = compute_params(640, 640, 640, aspect_ratio_correction=False)
        self.assertEqual(len(decode(tensor, params, LABELS)), 1)

    def test_batch_larger_than_one_rejected(self) -> None:
        tensor = np.zeros((2, 3, 84), dtype=np.float32)
        params = compute_params(640, 640, 640)
        with self.assertRaises(ShapeMismatchError):
            decode(tensor, params, LABELS)

    def test_missing_class_columns_rejected(self) -> None:
        params = compute_params(640, 640, 640)
        with self.assertRaises(ShapeMismatchError):
            decode(np.zeros((3, 4), dtype=np.float32), params, LABELS)
        with self.assertRaises(ShapeMismatchError):
            decode(np.zeros((84,), dtype=np.float32), params, LABELS)

    def test_empty_label_table_rejected(self) -> None:
        params = compute_params(640, 640, 640)
        with self.assertRaises(ShapeMismatchError):
            decode(np.zeros((3, 84), dtype=np.float32), params, [])

    def test_no_rows(self) -> None:
        params = compute_params(640, 640, 640)
        self.assertEqual(decode(np.zeros((0, 84), dtype=np.float32), params, LABELS), [])

    def test_tie_keeps_lowest_class(self) -> None:
        tensor = np.stack([_row(320, 320, 100, 100, {7: 0.8, 2: 0.8, 9: 0.1})])
        params = compute_params(640, 640, 640, aspect_ratio_correction=False)
        dets = decode(tensor, params, LABELS, confidence_threshold=0.5)
        self.assertEqual(dets[0].class_id, 2)

    def test_no_positive_score_gives_unknown(self) -> None:
        tensor = np.stack([_row(320, 320, 100, 100)])
        params = compute_params(640, 640, 640, aspect_ratio_correction=False)
        dets = decode(tensor, params, LABELS, confidence_threshold=0.0)
        self.assertEqual(len(dets), 1)
        self.assertEqual(dets[0].class_id, -1)
        self.assertEqual(dets[0].label, UNKNOWN_LABEL)
        self.assertEqual(dets[0].confidence, 0.0)

    def test_classes_beyond_label_table_ignored(self) -> None:
        tensor = np.stack([_row(320, 320, 100, 100, {1: 0.3, 5: 0.95})])
        params = compute_params(640, 640, 640, aspect_ratio_correction=False)
        dets = decode(tensor, params, ["a", "b", "c"], confidence_threshold=0.2)
        self.assertEqual(len(dets), 1)
        self.assertEqual(dets[0].class_id, 1)
        self.assertEqual(dets[0].label, "b")
        self.assertAlmostEqual(dets[0].confidence, 0.3, places=6)

    def test_row_order_preserved(self) -> None:
        tensor = np.stack(
            [
                _row(100, 100, 50, 50, {0: 0.6}),
                _row(400, 400, 50, 50, {1: 0.9}),
                _row(200, 500, 50, 50, {2: 0.2}),
                _row(500, 100, 50, 50, {3: 0.7}),
            ]
        )
        params = compute_params(640, 640, 640, aspect_ratio_correction=False)
        dets = decode(tensor, params, LABELS, confidence_threshold=0.5)
        self.assertEqual([d.class_id for d in dets], [0, 1, 3])

    def test_input_not_mutated(self) -> None:
        tensor = np.stack([_row(320, 320, 100, 100, {3: 0.9}), _row(10, 10, 40, 40, {1: 0.7})])
        before = tensor.copy()
        params = compute_params(1280, 720, 640, aspect_ratio_correction=True)
        decode(tensor, params, LABELS, confidence_threshold=0.5)
        self.assertTrue(np.array_equal(tensor, before))

    def test_letterboxed_box_mapped_to_original(self) -> None:
        tensor = np.stack([_row(320, 320, 100, 100, {0: 0.9})])
        params = compute_params(1280, 720, 640, aspect_ratio_correction=True)
        dets = decode(tensor, params, LABELS, confidence_threshold=0.5)
        self.assertEqual(len(dets), 1)
        self.assertTrue(np.allclose(dets[0].as_xyxy(), (540, 260, 740, 460)))

    def test_box_in_padding_rejected(self) -> None:
        tensor = np.stack([_row(320, 50, 20, 20, {0: 0.9}), _row(320, 600, 20, 20, {0: 0.9})])
        params = compute_params(1280, 720, 640, aspect_ratio_correction=True)
        self.assertEqual(decode(tensor, params, LABELS, confidence_threshold=0.5), [])

    def test_box_straddling_padding_is_clamped(self) -> None:
        tensor = np.stack([_row(320, 140, 100, 100, {0: 0.9})])
        params = compute_params(1280, 720, 640, aspect_ratio_correction=True)
        dets = decode(tensor, params, LABELS, confidence_threshold=0.5)
        self.assertEqual(len(dets), 1)
        self.assertTrue(np.allclose(dets[0].as_xyxy(), (540, 0, 740, 100)))

    def test_box_clamped_to_image_without_correction(self) -> None:
        tensor = np.stack([_row(0, 640, 100, 100, {0: 0.9})])
        params = compute_params(640, 640, 640, aspect_ratio_correction=False)
        dets = decode(tensor, params, LABELS, confidence_threshold=0.5)
        self.assertEqual(len(dets), 1)
        self.assertTrue(np.allclose(dets[0].as_xyxy(), (0, 590, 50, 640)))

    def test_degenerate_and_outside_rows_rejected(self) -> None:
        tensor = np.stack(
            [
                _row(320, 320, 0, 100, {0: 0.9}),
                _row(-200, 320, 100, 100, {0: 0.9}),
                _row(320, 320, 100, -5, {0: 0.9}),
            ]
        )
        for correction in (True, False):
            params = compute_params(1280, 720, 640, aspect_ratio_correction=correction)
            self.assertEqual(decode(tensor, params, LABELS, confidence_threshold=0.5), [])

    def test_normalized_coords(self) -> None:
        tensor = np.stack([_row(0.5, 0.5, 0.15625, 0.15625, {3: 0.9})])
        params = compute_params(640, 640, 640, aspect_ratio_correction=False)
        dets = decode(tensor, params, LABELS, confidence_threshold=0.5, normalized_coords=True)
        self.assertTrue(np.allclose(dets[0].as_xyxy(), (270, 270, 370, 370)))

    def test_confidence_monotonic(self) -> None:
        rng = np.random.default_rng(0)
        n = 300
        tensor = np.zeros((n, 4 + NUM_CLASSES), dtype=np.float32)
        tensor[:, 0:2] = rng.uniform(0, 640, size=(n, 2))
        tensor[:, 2:4] = rng.uniform(5, 200, size=(n, 2))
        tensor[:, 4:] = rng.uniform(0, 1, size=(n, NUM_CLASSES)) ** 8
        params = compute_params(1280, 720, 640, aspect_ratio_correction=True)

        counts = [len(decode(tensor, params, LABELS, confidence_threshold=t)) for t in np.linspace(0, 1, 21)]
        self.assertTrue(all(a >= b for a, b in zip(counts, counts[1:])))
        self.assertGreater(counts[0], counts[-1])

    def test_deterministic(self) -> None:
        rng = np.random.default_rng(1)
        n = 200
        tensor = np.zeros((n, 4 + NUM_CLASSES), dtype=np.float32)
        tensor[:, 0:2] = rng.uniform(0, 640, size=(n, 2))
        tensor[:, 2:4] = rng.uniform(5, 200, size=(n, 2))
        tensor[:, 4:] = rng.uniform(0, 1, size=(n, NUM_CLASSES))
        params = compute_params(800, 600, 640, aspect_ratio_correction=True)

        runs = [suppress(decode(tensor, params, LABELS, 0.3), 0.45, 100) for _ in range(3)]
        self.assertEqual(runs[0], runs[1])
        self.assertEqual(runs[1], runs[2])
        self.assertLessEqual(len(runs[0]), 100)

    def test_observer_sees_every_row(self) -> None:
        tensor = np.stack(
            [
                _row(320, 320, 100, 100, {0: 0.9}),
                _row(320, 320, 100, 100, {0: 0.1}),
                _row(320, 320, 0, 100, {0: 0.9}),
                _row(320, 50, 20, 20, {0: 0.9}),
            ]
        )
        params = compute_params(1280, 720, 640, aspect_ratio_correction=True)
        events = []
        decoder = CandidateDecoder(DecoderConfig(confidence_threshold=0.5), observer=events.append)
        dets = decoder.decode(tensor, params, LABELS)

        self.assertEqual(len(dets), 1)
        self.assertEqual([e.index for e in events], [0, 1, 2, 3])
        self.assertEqual(
            [e.status for e in events],
            [
                CandidateStatus.ACCEPTED,
                CandidateStatus.LOW_CONFIDENCE,
                CandidateStatus.DEGENERATE,
                CandidateStatus.OUTSIDE_CONTENT,
            ],
        )
        self.assertTrue(np.allclose(events[0].box, (270, 130, 370, 230)))

    def test_observer_reports_empty_after_clamp(self) -> None:
        tensor = np.stack([_row(-200, 320, 100, 100, {0: 0.9})])
        params = compute_params(640, 640, 640, aspect_ratio_correction=False)
        events = []
        decode(tensor, params, LABELS, confidence_threshold=0.5, observer=events.append)
        self.assertEqual(events[0].status, CandidateStatus.EMPTY_AFTER_CLAMP)

    def test_nan_score_does_not_hide_best_class(self) -> None:
        tensor = np.array([[320, 320, 100, 100, 0.9, 0, np.nan]], dtype=np.float32)
        params = compute_params(640, 640, 640, aspect_ratio_correction=False)
        dets = decode(tensor, params, ["a", "b", "c"], confidence_threshold=0.5)
        self.assertEqual(len(dets), 1)
        self.assertEqual(dets[0].class_id, 0)
        self.assertAlmostEqual(dets[0].confidence, 0.9, places=6)

    def test_all_nan_scores_give_unknown(self) -> None:
        tensor = np.array([[320, 320, 100, 100, np.nan, np.nan]], dtype=np.float32)
        params = compute_params(640, 640, 640, aspect_ratio_correction=False)
        dets = decode(tensor, params, ["a", "b"], confidence_threshold=0.0)
        self.assertEqual(len(dets), 1)
        self.assertEqual(dets[0].class_id, -1)
        self.assertEqual(dets[0].confidence, 0.0)

    def test_nan_box_rejected(self) -> None:
        tensor = np.array(
            [
                [np.nan, 320, 100, 100, 0.9, 0, 0],
                [320, 320, 100, np.nan, 0.9, 0, 0],
                [320, 320, 100, 100, 0.9, 0, 0],
            ],
            dtype=np.float32,
        )
        expected = {True: CandidateStatus.DEGENERATE, False: CandidateStatus.EMPTY_AFTER_CLAMP}
        for correction in (True, False):
            params = compute_params(1280, 720, 640, aspect_ratio_correction=correction)
            events = []
            dets = decode(tensor, params, ["a", "b", "c"], confidence_threshold=0.5, observer=events.append)
            self.assertEqual(len(dets), 1)
            self.assertTrue(all(d.x1 < d.x2 and d.y1 < d.y2 for d in dets))
            self.assertEqual([e.status for e in events[:2]], [expected[correction]] * 2)

    def test_invalid_threshold_rejected(self) -> None:
        with self.assertRaises(InvalidArgumentError):
            DecoderConfig(confidence_threshold=1.5)


if __name__ == "__main__":
    unittest.main()
