from __future__ import annotations

import argparse
import statistics
import time
from dataclasses import dataclass
from typing import List

import numpy as np

from detection_kit import CandidateDecoder, DecoderConfig, compute_params, suppress, synthetic_labels


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float


def _percentile(sorted_values: List[float], q: float) -> float:
    if not sorted_values:
        raise ValueError("No values provided.")
    if q < 0.0 or q > 100.0:
        raise ValueError("q must be in [0, 100].")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    # Linear interpolation between closest ranks.
    pos = (q / 100.0) * (len(sorted_values) - 1)
    lo = int(np.floor(pos))
    hi = int(np.ceil(pos))
    if lo == hi:
        return float(sorted_values[lo])
    t = pos - lo
    return float(sorted_values[lo] * (1.0 - t) + sorted_values[hi] * t)


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms_sorted = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms_sorted),
        mean_ms=float(statistics.fmean(ms_sorted)),
        p50_ms=_percentile(ms_sorted, 50.0),
        p90_ms=_percentile(ms_sorted, 90.0),
        p95_ms=_percentile(ms_sorted, 95.0),
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def _synthetic_tensor(n: int, num_classes: int, imgsz: int, seed: int) -> np.ndarray:
    """
    (n, 4 + C) tensor of random boxes; class scores are skewed low like real detector output.
    """

    rng = np.random.default_rng(seed)
    out = np.zeros((n, 4 + num_classes), dtype=np.float32)
    out[:, 0:2] = rng.uniform(0, imgsz, size=(n, 2))
    out[:, 2:4] = rng.uniform(5, imgsz / 8, size=(n, 2))
    out[:, 4:] = rng.uniform(0.0, 1.0, size=(n, num_classes)) ** 12
    return out


def main() -> int:
    parser = argparse.ArgumentParser(description="Benchmark candidate decoding and NMS on synthetic model output.")
    parser.add_argument("--candidates", type=int, default=8400, help="Rows in the synthetic output tensor.")
    parser.add_argument("--classes", type=int, default=80, help="Class score columns.")
    parser.add_argument("--imgsz", type=int, default=640, help="Model input size.")
    parser.add_argument("--width", type=int, default=1280, help="Original image width.")
    parser.add_argument("--height", type=int, default=720, help="Original image height.")
    parser.add_argument("--conf", type=float, default=0.25, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=0.45, help="IoU threshold for NMS.")
    parser.add_argument("--max-det", type=int, default=100, help="Max detections kept after NMS.")
    parser.add_argument("--no-aspect-correction", action="store_true", help="Stretch instead of letterboxing.")
    parser.add_argument("--warmup", type=int, default=10, help="Iterations to run but not record.")
    parser.add_argument("--repeats", type=int, default=100, help="Recorded iterations.")
    parser.add_argument("--seed", type=int, default=0, help="RNG seed for the synthetic tensor.")
    args = parser.parse_args()

    if args.candidates < 1:
        raise ValueError("--candidates must be >= 1")
    if args.classes < 1:
        raise ValueError("--classes must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    tensor = _synthetic_tensor(int(args.candidates), int(args.classes), int(args.imgsz), int(args.seed))
    labels = synthetic_labels(int(args.classes))
    params = compute_params(int(args.width), int(args.height), int(args.imgsz), not bool(args.no_aspect_correction))
    decoder = CandidateDecoder(DecoderConfig(confidence_threshold=float(args.conf)))

    t_decode: List[float] = []
    t_nms: List[float] = []
    n_candidates = 0
    n_kept = 0

    for i in range(int(args.warmup) + int(args.repeats)):
        t0 = time.perf_counter()
        candidates = decoder.decode(tensor, params, labels)
        t1 = time.perf_counter()
        kept = suppress(candidates, float(args.iou), int(args.max_det))
        t2 = time.perf_counter()

        if i < int(args.warmup):
            continue
        t_decode.append(t1 - t0)
        t_nms.append(t2 - t1)
        n_candidates, n_kept = len(candidates), len(kept)

    print(_format_summary("decode", _summarize_ms(t_decode)))
    print(_format_summary("suppress", _summarize_ms(t_nms)))
    print(f"candidates_after_conf={n_candidates} kept_after_nms={n_kept}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
