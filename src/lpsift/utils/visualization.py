import matplotlib.pyplot as plt
import numpy as np
import cv2
from typing import Dict, List, Optional, Sequence

from ..benchmark.metrics import StitchingMetrics


class LPSIFTVisualizer:
    """Plots of local-peak keypoints, matches and benchmark timings, written to files"""

    @staticmethod
    def _show_image(ax, image: np.ndarray):
        if len(image.shape) == 3:
            ax.imshow(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
        else:
            ax.imshow(image, cmap='gray')
        ax.axis('off')

    @staticmethod
    def plot_keypoints(image: np.ndarray, keypoints: Sequence[cv2.KeyPoint], save_path: str,
                       title: str = "LP-SIFT Keypoints", figsize: tuple = (12, 8)):
        """
        Plot keypoints coloured by their window size

        Args:
            image: Input image
            keypoints: Keypoints with class_id holding the window size
            save_path: Output image path
            title: Plot title
            figsize: Figure size
        """
        fig, ax = plt.subplots(figsize=figsize)
        LPSIFTVisualizer._show_image(ax, image)

        if len(keypoints) > 0:
            points = np.array([kp.pt for kp in keypoints])
            windows = np.array([kp.class_id for kp in keypoints])
            for window_size in np.unique(windows):
                selected = points[windows == window_size]
                ax.scatter(selected[:, 0], selected[:, 1], s=12, alpha=0.7,
                           label=f'L={window_size} ({len(selected)})')
            ax.legend(loc='upper right')

        ax.set_title(title, fontsize=14, fontweight='bold')
        fig.tight_layout()
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

    @staticmethod
    def plot_matches(image1: np.ndarray, image2: np.ndarray,
                     points1: np.ndarray, points2: np.ndarray, save_path: str,
                     inlier_mask: Optional[np.ndarray] = None,
                     title: str = "LP-SIFT Matches", figsize: tuple = (16, 8)):
        """
        Plot matches side by side with connecting lines

        Args:
            image1, image2: Input images
            points1, points2: Matched (x, y) points [N, 2]
            save_path: Output image path
            inlier_mask: Optional mask; inliers are drawn green, outliers red
            title: Plot title
            figsize: Figure size
        """
        h1, w1 = image1.shape[:2]
        h2, w2 = image2.shape[:2]

        if len(image1.shape) == 3:
            combined = np.zeros((max(h1, h2), w1 + w2, 3), dtype=image1.dtype)
        else:
            combined = np.zeros((max(h1, h2), w1 + w2), dtype=image1.dtype)
        combined[:h1, :w1] = image1
        combined[:h2, w1:w1 + w2] = image2

        fig, ax = plt.subplots(figsize=figsize)
        LPSIFTVisualizer._show_image(ax, combined)

        if inlier_mask is None:
            inlier_mask = np.ones(len(points1), dtype=bool)

        for (x1, y1), (x2, y2), inlier in zip(points1, points2, inlier_mask):
            ax.plot([x1, x2 + w1], [y1, y2], '-', color='g' if inlier else 'r',
                    alpha=0.6, linewidth=1)

        num_inliers = int(np.count_nonzero(inlier_mask))
        ax.set_title(f'{title} ({num_inliers}/{len(points1)} inliers)', fontsize=14, fontweight='bold')
        fig.tight_layout()
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

    @staticmethod
    def plot_stage_timings(results: Sequence[StitchingMetrics], save_path: str,
                           figsize: tuple = (12, 6)):
        """Stacked per-stage times of successful runs, one bar per algorithm (mean over sets)"""
        stages = [
            ('Detection', lambda m: m.detection_time_reference + m.detection_time_registered),
            ('Description', lambda m: m.descriptor_time_reference + m.descriptor_time_registered),
            ('Matching', lambda m: m.matching_time),
            ('Homography', lambda m: m.homography_time),
            ('Warping', lambda m: m.warping_time),
        ]

        by_algorithm: Dict[str, List[StitchingMetrics]] = {}
        for m in results:
            if m.stitching_success:
                by_algorithm.setdefault(m.algorithm_name, []).append(m)

        fig, ax = plt.subplots(figsize=figsize)
        names = list(by_algorithm)
        bottom = np.zeros(len(names))
        for label, getter in stages:
            values = np.array([np.mean([getter(m) for m in by_algorithm[name]]) for name in names])
            ax.bar(names, values, bottom=bottom, label=label, alpha=0.8)
            bottom += values

        ax.set_ylabel('Time (s)')
        ax.set_title('Mean Stage Timings (successful runs)', fontsize=14, fontweight='bold')
        if names:
            ax.legend()
        fig.tight_layout()
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)
