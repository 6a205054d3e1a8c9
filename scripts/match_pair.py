#!/usr/bin/env python3
"""
Script to match two images with LP-SIFT and estimate their homography
"""

import argparse
import logging
import os
import sys
import time
from pathlib import Path

import cv2
import matplotlib
matplotlib.use('Agg')

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from lpsift.benchmark.detectors import ConfigurationError, parse_window_sizes
from lpsift.benchmark.metrics import format_homography
from lpsift.benchmark.stitching import (create_matcher, estimate_homography, match_descriptors,
                                        matched_points, reprojection_error, warp_and_blend)
from lpsift.models.lpsift import LPORB, LPSIFT
from lpsift.utils.visualization import LPSIFTVisualizer


def parse_args():
    parser = argparse.ArgumentParser(description='Match two images with LP-SIFT')
    parser.add_argument('image1', help='Reference image')
    parser.add_argument('image2', help='Registered image')
    parser.add_argument('--output_dir', default='./matches',
                       help='Directory to save plots and the stitched image')
    parser.add_argument('--config', default='configs/lpsift/benchmark.py',
                       help='Configuration file')
    parser.add_argument('--window-sizes', default='32,64,128',
                       help='Comma-separated window sizes L')
    parser.add_argument('--orb', action='store_true', help='Use LP-ORB instead of LP-SIFT')
    parser.add_argument('--visualize', action='store_true',
                       help='Save keypoint and match plots')

    return parser.parse_args()


def load_config(config_path):
    """Load configuration from Python file"""
    if os.path.exists(config_path):
        import importlib.util
        spec = importlib.util.spec_from_file_location("config", config_path)
        config_module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(config_module)
        return config_module.config
    else:
        return {"detector": {}}


def main():
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format='%(message)s')

    image1 = cv2.imread(args.image1, cv2.IMREAD_GRAYSCALE)
    image2 = cv2.imread(args.image2, cv2.IMREAD_GRAYSCALE)
    if image1 is None or image2 is None:
        print(f"Error: Could not load images {args.image1}, {args.image2}")
        sys.exit(1)

    try:
        window_sizes = parse_window_sizes(args.window_sizes)
        detector_config = dict(load_config(args.config).get('detector', {}))
        detector_config.pop('window_sizes', None)
        if args.orb:
            detector = LPORB.from_config(detector_config, window_sizes=window_sizes, descriptor='orb')
        else:
            detector = LPSIFT.from_config(detector_config, window_sizes=window_sizes)
    except (ConfigurationError, ValueError, TypeError) as e:
        print(f"Configuration error: {e}")
        sys.exit(2)

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    print(f"Detector: {detector.getDefaultName()}, window sizes L = {window_sizes}")

    start_time = time.time()
    kpts1, desc1 = detector.detectAndCompute(image1, None)
    kpts2, desc2 = detector.detectAndCompute(image2, None)
    print(f"Keypoints: {len(kpts1)} / {len(kpts2)} ({time.time() - start_time:.2f}s)")

    if len(desc1) == 0 or len(desc2) == 0:
        print("No descriptors to match")
        sys.exit(1)

    norm = detector.defaultNorm()
    matches = match_descriptors(create_matcher(norm), desc1, desc2, norm)
    pts1, pts2 = matched_points(kpts1, kpts2, matches)
    print(f"Cross-checked matches: {len(matches)}")

    H, inlier_mask = estimate_homography(pts1, pts2)
    if H is None:
        print("Homography estimation failed")
        sys.exit(1)

    print(f"Inliers: {int(inlier_mask.sum())}")
    print(f"Reprojection error: {reprojection_error(H, pts1[inlier_mask], pts2[inlier_mask]):.3f} px")
    print(f"Homography: {format_homography(H)}")

    stitched_file = output_dir / 'stitched.jpg'
    cv2.imwrite(str(stitched_file), warp_and_blend(image2, image1, H))
    print(f"Stitched image saved to: {stitched_file}")

    if args.visualize:
        visualizer = LPSIFTVisualizer()
        visualizer.plot_keypoints(image1, kpts1, str(output_dir / 'keypoints_1.png'),
                                  title=f"Keypoints: {Path(args.image1).name}")
        visualizer.plot_keypoints(image2, kpts2, str(output_dir / 'keypoints_2.png'),
                                  title=f"Keypoints: {Path(args.image2).name}")
        visualizer.plot_matches(image1, image2, pts1, pts2, str(output_dir / 'matches.png'),
                                inlier_mask=inlier_mask)
        print(f"Plots saved to: {output_dir}")


if __name__ == "__main__":
    main()
