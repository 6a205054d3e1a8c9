#!/usr/bin/env python3
"""
Script to benchmark LP-SIFT, LP-ORB and OpenCV detectors on image-set stitching
"""

import argparse
import logging
import os
import sys
from pathlib import Path

import matplotlib
matplotlib.use('Agg')

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from lpsift.benchmark.detectors import (ConfigurationError, DETECTOR_NAMES,
                                        parse_detector_filters, parse_window_sizes)
from lpsift.benchmark.reporting import export_csv, print_summary_table, summarize_by_detector
from lpsift.benchmark.runner import BenchmarkConfig, BenchmarkRunner
from lpsift.benchmark.stitching import MatcherType
from lpsift.utils.visualization import LPSIFTVisualizer


def parse_args():
    parser = argparse.ArgumentParser(description='Benchmark keypoint detectors on image stitching')
    parser.add_argument('image_dir', help='Directory with one sub-directory per image set')
    parser.add_argument('--output_dir', default='./benchmark_results',
                       help='Directory for stitched images and plots')
    parser.add_argument('--csv', default='benchmark_results.csv',
                       help='CSV results file (relative paths go into output_dir)')
    parser.add_argument('--config', default='configs/lpsift/benchmark.py',
                       help='Configuration file')
    parser.add_argument('--sets', nargs='+', default=None,
                       help='Only run these image sets')
    parser.add_argument('--detector-filter', action='append', default=[], dest='detector_filters',
                       metavar='SET=NAMES',
                       help=f'Detectors for a set, e.g. "*=SIFT,LP-SIFT" (available: {", ".join(DETECTOR_NAMES)})')
    parser.add_argument('--window-sizes', default=None,
                       help='Comma-separated window sizes L, overriding the size categories')
    parser.add_argument('--auto-windows', action='store_true',
                       help='Choose window sizes from the image spectrum')
    parser.add_argument('--matcher', choices=[m.value for m in MatcherType], default=None,
                       help='Descriptor matcher')
    parser.add_argument('--no-stitched', action='store_true',
                       help='Do not save stitched images')
    parser.add_argument('--plot-timings', action='store_true',
                       help='Save a stage timing plot')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')

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
        # Default configuration
        return {"detector": {}, "benchmark": {}}


def build_config(args) -> BenchmarkConfig:
    config = BenchmarkConfig.from_dict(load_config(args.config))

    if args.window_sizes:
        config.window_sizes = parse_window_sizes(args.window_sizes)
    if args.auto_windows:
        config.auto_window_sizes = True
    if args.matcher:
        config.matcher_type = MatcherType(args.matcher)
    if args.no_stitched:
        config.save_stitched = False

    return config


def main():
    args = parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(message)s')

    try:
        config = build_config(args)
        detector_filters = parse_detector_filters(args.detector_filters)
    except (ConfigurationError, ValueError, TypeError) as e:
        print(f"Configuration error: {e}")
        sys.exit(2)

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    print("=" * 60)
    print("LP-SIFT Stitching Benchmark")
    print("=" * 60)
    print(f"Image directory: {args.image_dir}")
    print(f"Matcher: {config.matcher_type.value}")

    runner = BenchmarkRunner(config)
    results = runner.run_on_directory(args.image_dir, args.sets, detector_filters, str(output_dir))

    if not results:
        print("No benchmark results produced")
        sys.exit(1)

    print_summary_table(results)

    print("\nPer-detector summary:")
    print(summarize_by_detector(results).to_string(index=False, float_format=lambda v: f"{v:.3f}"))

    csv_path = Path(args.csv)
    if not csv_path.is_absolute():
        csv_path = output_dir / csv_path
    export_csv(results, str(csv_path))
    print(f"\nResults exported to: {csv_path}")

    if args.plot_timings:
        timing_path = output_dir / 'stage_timings.png'
        LPSIFTVisualizer.plot_stage_timings(results, str(timing_path))
        print(f"Timing plot saved to: {timing_path}")


if __name__ == "__main__":
    main()
