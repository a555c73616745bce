from __future__ import annotations

import argparse
import statistics
import time
from dataclasses import dataclass
from typing import Dict, List

import numpy as np

from detect_kit import DecodeConfig, DetectionDecoder, LetterboxMeta


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
        mean_ms=float(statistics.fmean(ms_sorted)) if ms_sorted else 0.0,
        p50_ms=_percentile(ms_sorted, 50.0) if ms_sorted else 0.0,
        p90_ms=_percentile(ms_sorted, 90.0) if ms_sorted else 0.0,
        p95_ms=_percentile(ms_sorted, 95.0) if ms_sorted else 0.0,
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def _synthetic_outputs(args: argparse.Namespace, rng: np.random.Generator) -> Dict[str, np.ndarray]:
    """
    Random logits in the channels-first combined layout (1, 4 + C, A), like a v8-style export.
    """

    a = int(args.anchors)
    c = int(args.classes)
    s = float(args.imgsz)
    cxcy = rng.uniform(0, s, size=(2, a))
    wh = rng.uniform(5, 120, size=(2, a))
    logits = rng.normal(-4.0, 2.5, size=(c, a))
    return {"output0": np.concatenate([cxcy, wh, logits], axis=0)[None, ...].astype(np.float32)}


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Benchmark model-free decode latency (layout + scores + mapping + per-class NMS)."
    )
    parser.add_argument("--anchors", type=int, default=8400, help="Candidate boxes per frame.")
    parser.add_argument("--classes", type=int, default=80, help="Class columns per candidate.")
    parser.add_argument("--imgsz", type=int, default=640, help="Square input size.")
    parser.add_argument("--conf", type=float, default=0.25, help="Score threshold (pre-NMS).")
    parser.add_argument("--iou", type=float, default=0.45, help="IoU threshold for NMS.")
    parser.add_argument("--max-det", type=int, default=300, help="Max detections kept after NMS.")
    parser.add_argument("--warmup", type=int, default=10, help="Warmup runs to discard.")
    parser.add_argument("--repeats", type=int, default=100, help="Recorded runs.")
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args()

    if args.anchors < 1:
        raise ValueError("--anchors must be >= 1")
    if args.classes < 1:
        raise ValueError("--classes must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    decoder = DetectionDecoder(
        DecodeConfig(score_threshold=float(args.conf), iou_threshold=float(args.iou), max_detections=int(args.max_det))
    )
    rng = np.random.default_rng(int(args.seed))
    meta = LetterboxMeta.identity(int(args.imgsz))
    frame_size = (int(args.imgsz), int(args.imgsz))

    samples: List[float] = []
    counts: List[int] = []
    for run in range(int(args.warmup) + int(args.repeats)):
        outputs = _synthetic_outputs(args, rng)
        t0 = time.perf_counter()
        dets = decoder.decode(outputs, frame_size, meta)
        t1 = time.perf_counter()
        if run >= int(args.warmup):
            samples.append(t1 - t0)
            counts.append(len(dets))

    print(_format_summary("decode", _summarize_ms(samples)))
    print(f"anchors={args.anchors} classes={args.classes} mean_detections={statistics.fmean(counts):.1f}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
