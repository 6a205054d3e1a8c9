#!/usr/bin/env python3
"""
Script to suggest local-peak window sizes from the image spectrum
"""

import argparse
import os
import sys

import cv2

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from lpsift.utils.window_suggestion import suggest_window_sizes


def parse_args():
    parser = argparse.ArgumentParser(description='Suggest LP-SIFT window sizes for an image')
    parser.add_argument('image', help='Input image')
    parser.add_argument('--num_peaks', type=int, default=2,
                       help='Number of spectral peaks to report')
    parser.add_argument('--suppress_radius', type=int, default=6,
                       help='Minimum distance between spectral peaks')
    parser.add_argument('--dc_radius', type=int, default=4,
                       help='Radius removed around the DC component')

    return parser.parse_args()


def main():
    args = parse_args()

    image = cv2.imread(args.image, cv2.IMREAD_GRAYSCALE)
    if image is None:
        print(f"Error: Could not load image {args.image}")
        sys.exit(1)

    suggestions = suggest_window_sizes(image, args.num_peaks, args.suppress_radius, args.dc_radius)
    if not suggestions:
        print("No dominant frequency found")
        return

    print(f"Image: {image.shape[1]}x{image.shape[0]}")
    for i, s in enumerate(suggestions):
        print(f"  Peak {i + 1}: ({s.x}, {s.y}), radius {s.radius:.1f}, "
              f"log magnitude {s.magnitude:.2f} -> L = {s.window_size}")

    sizes = sorted({s.window_size for s in suggestions})
    print(f"\nSuggested window sizes: --window-sizes {','.join(str(L) for L in sizes)}")


if __name__ == "__main__":
    main()
