from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import cv2
import numpy as np
from tqdm import tqdm

from footy_kit import FootyDetector, FramePlanes, PipelineConfig, load_pipeline_config


def read_frame(path: str) -> FramePlanes:
    """
    Read an image from disk and split it into I420 planes, the way a camera delivers them.
    """

    img = cv2.imread(path)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {path}")
    h, w = img.shape[:2]
    # I420 needs even dimensions.
    img = img[: h - (h % 2), : w - (w % 2)]
    h, w = img.shape[:2]

    yuv = cv2.cvtColor(img, cv2.COLOR_BGR2YUV_I420).reshape(-1)
    y_size = w * h
    c_size = (w // 2) * (h // 2)
    y = np.ascontiguousarray(yuv[:y_size])
    u = np.ascontiguousarray(yuv[y_size : y_size + c_size])
    v = np.ascontiguousarray(yuv[y_size + c_size : y_size + 2 * c_size])
    return FramePlanes(y=y, u=u, v=v, width=w, height=h, uv_row_stride=w // 2, uv_pixel_stride=1)


def _dump(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2))


def main() -> int:
    parser = argparse.ArgumentParser(description="Run ball and/or pose detection on one image.")
    parser.add_argument("--image", required=True, help="Path to an input image.")
    parser.add_argument("--detector", default=None, help="Ball detector model (.onnx).")
    parser.add_argument("--labels", default=None, help="Label file for the ball detector.")
    parser.add_argument("--pose", default=None, help="Pose model (.onnx).")
    parser.add_argument("--config", default=None, help="Optional pipeline config JSON.")
    parser.add_argument("--rotation", type=int, default=0, choices=(0, 90, 180, 270), help="Sensor rotation in degrees.")
    parser.add_argument("--front", action="store_true", help="Mirror results as for a front-facing camera.")
    parser.add_argument("--accelerator", action="store_true", help="Try the accelerated tier first.")
    parser.add_argument("--repeats", type=int, default=1, help="Run the frame N times and report the mean latency.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...).")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.detector is None and args.pose is None:
        parser.error("Pass --detector and/or --pose.")
    if args.detector is not None and args.labels is None:
        parser.error("--detector needs --labels.")
    if args.repeats < 1:
        parser.error("--repeats must be >= 1")

    cfg: PipelineConfig = load_pipeline_config(Path(args.config)) if args.config else PipelineConfig()
    frame = read_frame(args.image)

    with FootyDetector(cfg) as detector:
        if args.detector is not None:
            loaded = detector.load_detector(args.detector, args.labels, use_accelerator=args.accelerator)
            if not loaded.ok:
                print(f"detector failed to load: {loaded.reason}")
                return 1
            result: Optional[Any] = None
            for _ in tqdm(range(args.repeats), unit="frame", disable=args.repeats < 2):
                result = detector.detect_ball(frame, args.rotation, args.front)
            _dump({"ball": result.to_dict(), "latency": detector.ball.latency.snapshot()})

        if args.pose is not None:
            loaded = detector.load_pose(args.pose, use_accelerator=args.accelerator)
            if not loaded.ok:
                print(f"pose model failed to load: {loaded.reason}")
                return 1
            result = None
            for _ in tqdm(range(args.repeats), unit="frame", disable=args.repeats < 2):
                result = detector.detect_pose(frame, args.rotation, args.front)
            _dump({"pose": result.to_dict(), "latency": detector.pose.latency.snapshot()})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
