from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

import cv2
import numpy as np

try:
    from tqdm import tqdm  # type: ignore
except ModuleNotFoundError:
    tqdm = None  # type: ignore[assignment]

from .config import LetterboxConfig, PipelineConfig, configure_logging, load_pipeline_config
from .errors import DecodeError
from .metadata import load_class_names
from .postprocess import DecodeConfig
from .runtime import DetectionPipeline, load_pipeline
from .types import FrameResult
from .visualize import draw_detections, format_detection_list


logger = logging.getLogger(__name__)


def _parse_ort_providers(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    parts = [p.strip().strip("'\"`") for p in str(raw).split(",")]
    return [p for p in parts if p] or None


def _pick(cli_value, config_value):
    return cli_value if cli_value is not None else config_value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="detect-kit",
        description="Run an exported ONNX detector on an image or video and print the decoded detections.",
    )
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image.")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")

    parser.add_argument("--model", required=True, help="Path to an .onnx model (exported without NMS).")
    parser.add_argument("--config", default=None, help="Optional pipeline config JSON; CLI flags win.")
    parser.add_argument("--classes", default=None, help="Class names (classes.json or metadata.yaml).")
    parser.add_argument("--imgsz", type=int, default=None, help="Letterbox input size (default 640).")
    parser.add_argument("--conf", type=float, default=None, help="Score threshold (default 0.25).")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS (default 0.45).")
    parser.add_argument("--max-det", type=int, default=None, help="Max detections kept per frame (default 300).")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--every", type=int, default=1, help="Process every Nth frame for video/webcam.")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N processed frames (0 = no limit).")
    parser.add_argument("--skip-bad-frames", action="store_true", help="Skip frames that fail to decode instead of stopping.")
    parser.add_argument("--save", default=None, help="Write the annotated image/video to this path.")
    parser.add_argument("--show", action="store_true", help="Show annotated frames in a window.")
    parser.add_argument("--progress", action="store_true", help="Show a progress bar (needs tqdm).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def build_pipeline(args: argparse.Namespace) -> DetectionPipeline:
    cfg = load_pipeline_config(Path(args.config)) if args.config else PipelineConfig()

    decode_cfg = DecodeConfig(
        score_threshold=_pick(args.conf, cfg.decode.score_threshold),
        iou_threshold=_pick(args.iou, cfg.decode.iou_threshold),
        max_detections=_pick(args.max_det, cfg.decode.max_detections),
        class_ids=cfg.decode.class_ids,
    )
    letterbox_cfg = LetterboxConfig(
        input_size=_pick(args.imgsz, cfg.letterbox.input_size),
        color=cfg.letterbox.color,
    )

    class_names: List[str] = []
    classes_path = Path(args.classes) if args.classes else cfg.class_names
    if classes_path is not None:
        try:
            class_names = load_class_names(classes_path)
        except (OSError, ValueError) as exc:
            # Names are cosmetic; decoding falls back to size-based heuristics.
            logger.warning("class names not loaded (%s); using cls_<id>", exc)

    return load_pipeline(
        args.model,
        letterbox_cfg=letterbox_cfg,
        decode_cfg=decode_cfg,
        class_names=class_names,
        onnx_providers=_parse_ort_providers(args.onnx_providers),
    )


def _iter_frames(args: argparse.Namespace) -> Iterator[Tuple[int, np.ndarray]]:
    if args.video is not None:
        cap = cv2.VideoCapture(args.video)
        if not cap.isOpened():
            raise FileNotFoundError(f"Could not open video: {args.video}")
    else:
        cap = cv2.VideoCapture(int(args.webcam))
        if not cap.isOpened():
            raise RuntimeError(f"Could not open webcam index: {args.webcam}")

    frame_idx = 0
    processed = 0
    try:
        while True:
            ok, frame = cap.read()
            if not ok or frame is None:
                break
            frame_idx += 1
            if (frame_idx - 1) % int(args.every) != 0:
                continue
            yield frame_idx, frame
            processed += 1
            if args.max_frames and processed >= int(args.max_frames):
                break
    finally:
        cap.release()


def _format_frame(frame_idx: int, result: FrameResult) -> str:
    return (
        f"frame={frame_idx} detections={result.count} decode={result.decode_ms:.1f}ms "
        f"inference={result.inference_ms:.1f}ms total={result.total_ms:.1f}ms"
    )


def run_image(pipeline: DetectionPipeline, args: argparse.Namespace) -> int:
    image = cv2.imread(args.image)
    if image is None:
        raise FileNotFoundError(f"Could not read image at path: {args.image}")

    result = pipeline.run(image)
    print(_format_frame(1, result))
    for line in format_detection_list(result.detections, pipeline.class_names):
        print(f"  {line}")

    if args.save or args.show:
        vis = draw_detections(image, result.detections, class_names=pipeline.class_names)
        if args.save:
            cv2.imwrite(args.save, vis)
        if args.show:
            cv2.imshow("detections", vis)
            cv2.waitKey(0)
            cv2.destroyAllWindows()
    return 0


def run_stream(pipeline: DetectionPipeline, args: argparse.Namespace) -> int:
    writer = None
    bar = tqdm(unit="frame") if (args.progress and tqdm is not None) else None
    frames_in_tick = 0
    fps = 0.0
    tick = time.perf_counter()
    processed = 0
    failed = 0

    try:
        for frame_idx, frame in _iter_frames(args):
            try:
                result = pipeline.run(frame)
            except DecodeError as exc:
                failed += 1
                print(f"frame={frame_idx} decode failed: {exc}")
                if not args.skip_bad_frames:
                    return 1
                continue

            processed += 1
            frames_in_tick += 1
            now = time.perf_counter()
            if now - tick >= 1.0:
                fps = frames_in_tick / (now - tick)
                frames_in_tick = 0
                tick = now

            if bar is not None:
                bar.update(1)
                bar.set_postfix(dets=result.count, fps=f"{fps:.1f}", decode_ms=f"{result.decode_ms:.1f}")
            else:
                print(_format_frame(frame_idx, result))

            if args.save or args.show:
                vis = draw_detections(frame, result.detections, class_names=pipeline.class_names)
                if args.save:
                    if writer is None:
                        h, w = vis.shape[:2]
                        writer = cv2.VideoWriter(args.save, cv2.VideoWriter_fourcc(*"mp4v"), 25.0, (w, h))
                        if not writer.isOpened():
                            raise RuntimeError(f"Failed to open video writer: {args.save}")
                    writer.write(vis)
                if args.show:
                    cv2.imshow("detections", vis)
                    if (cv2.waitKey(1) & 0xFF) == ord("q"):
                        break
    finally:
        if bar is not None:
            bar.close()
        if writer is not None:
            writer.release()
        if args.show:
            cv2.destroyAllWindows()

    print(f"processed={processed} failed={failed}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.every < 1:
        raise ValueError("--every must be >= 1")
    if args.max_frames < 0:
        raise ValueError("--max-frames must be >= 0")
    if args.imgsz is not None and args.imgsz < 1:
        raise ValueError("--imgsz must be >= 1")

    configure_logging(args.verbose)
    pipeline = build_pipeline(args)

    if args.image is not None:
        return run_image(pipeline, args)
    return run_stream(pipeline, args)


if __name__ == "__main__":
    raise SystemExit(main())
