import argparse
import dataclasses
import logging

import cv2

from detection_kit import PipelineConfig, draw_detections, load_pipeline, load_pipeline_config


def main() -> int:
    parser = argparse.ArgumentParser(description="Run an ONNX detector on an image and print/draw the detections.")
    parser.add_argument("--image", required=True, help="Path to an input image.")
    parser.add_argument("--model", default="Models/yolov8n.onnx", help="Path to an ONNX model.")
    parser.add_argument("--labels", default="Models/labels.txt", help="Labels file (.txt one per line, or metadata.yaml).")
    parser.add_argument("--num-classes", type=int, default=None, help="Fallback to class_<i> names if labels fail to load.")
    parser.add_argument("--config", default=None, help="Optional pipeline config JSON (schema_version 1).")
    parser.add_argument("--imgsz", type=int, default=None, help="Model input size (e.g., 640).")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS.")
    parser.add_argument("--max-det", type=int, default=None, help="Maximum detections kept after NMS.")
    parser.add_argument("--no-aspect-correction", action="store_true", help="Stretch instead of letterboxing.")
    parser.add_argument("--normalized", action="store_true", help="Model emits box coordinates in [0, 1].")
    parser.add_argument("--channels-first", action="store_true", help="Model expects NCHW input.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--out", default=None, help="Optional output path for the visualization.")
    parser.add_argument("--show", action="store_true", help="Show a window with visualized detections.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    cfg = load_pipeline_config(args.config) if args.config else PipelineConfig()
    overrides = {}
    if args.imgsz is not None:
        overrides["input_size"] = int(args.imgsz)
    if args.conf is not None:
        overrides["confidence_threshold"] = float(args.conf)
    if args.iou is not None:
        overrides["iou_threshold"] = float(args.iou)
    if args.max_det is not None:
        overrides["max_detections"] = int(args.max_det)
    if args.no_aspect_correction:
        overrides["aspect_ratio_correction"] = False
    if args.normalized:
        overrides["normalized_coords"] = True
    cfg = dataclasses.replace(cfg, **overrides)

    onnx_providers = None
    if args.onnx_providers:
        onnx_providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]

    pipeline = load_pipeline(
        args.model,
        args.labels,
        cfg=cfg,
        num_classes=args.num_classes,
        providers=onnx_providers,
        channels_first=bool(args.channels_first),
    )

    img = cv2.imread(args.image)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {args.image}")

    detections = pipeline(img)
    for det in detections:
        print(det, det.as_xyxy())

    if args.out or args.show:
        vis = draw_detections(img, detections, show_score=True)
        if args.out:
            ok = cv2.imwrite(args.out, vis)
            if not ok:
                raise RuntimeError(f"Failed to write output image: {args.out}")
        if args.show:
            cv2.imshow("detections", vis)
            cv2.waitKey(0)
            cv2.destroyAllWindows()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
