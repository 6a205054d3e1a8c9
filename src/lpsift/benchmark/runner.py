import dataclasses
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

import cv2
import numpy as np

from ..datasets.image_sets import ImageSetDataset
from ..models.lpsift import to_grayscale
from ..utils.window_suggestion import suggest_window_sizes
from .detectors import DetectorConfig, build_detectors, detectors_for_set
from .metrics import (FailureReason, StitchingMetrics, format_time,
                      get_image_size_category, join_ints)
from .stitching import (MIN_MATCHES, RANSAC_MAX_ITERS, RANSAC_THRESHOLD, RNG_SEED,
                        MatcherType, corner_deviation, create_matcher,
                        estimate_homography, match_descriptors, matched_points,
                        reprojection_error, warp_and_blend)

logger = logging.getLogger(__name__)

# Brute-force matcher index width (~65536) caps the matchable keypoints
MAX_KEYPOINTS_BF = 50000

KEYPOINT_POLICY_FAIL = "fail"

DEFAULT_CATEGORY_WINDOW_SIZES = {
    "small": [16, 32, 64, 128],
    "medium": [32, 64, 128, 256],
    "large": [64, 128, 256, 512],
}


@dataclass
class BenchmarkConfig:
    """Benchmark settings; keys missing from a config dict keep these defaults"""

    window_sizes: Optional[List[int]] = None
    window_sizes_by_category: Dict[str, List[int]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CATEGORY_WINDOW_SIZES.items()}
    )
    auto_window_sizes: bool = False
    auto_window_peaks: int = 2

    lp_params: Dict = field(default_factory=dict)

    matcher_type: MatcherType = MatcherType.BRUTE_FORCE
    cross_check: bool = True
    max_keypoints_bf: int = MAX_KEYPOINTS_BF

    ransac_threshold: float = RANSAC_THRESHOLD
    ransac_max_iters: int = RANSAC_MAX_ITERS
    rng_seed: int = RNG_SEED

    baseline_detector: str = "SIFT"
    save_stitched: bool = True

    @classmethod
    def from_dict(cls, config: Dict) -> 'BenchmarkConfig':
        """
        Build from a configuration dict with 'benchmark', 'detector' and
        'window_sizes' sections; missing keys keep their defaults
        """
        benchmark = dict(config.get('benchmark', {}))
        if 'matcher_type' in benchmark:
            benchmark['matcher_type'] = MatcherType(benchmark['matcher_type'])

        lp_params = dict(config.get('detector', {}))
        window_sizes = lp_params.pop('window_sizes', None)
        if window_sizes is not None:
            benchmark.setdefault('window_sizes', list(window_sizes))

        params = dict(benchmark, lp_params=lp_params)
        if 'window_sizes' in config:
            by_category = {k: list(v) for k, v in DEFAULT_CATEGORY_WINDOW_SIZES.items()}
            by_category.update({key.lower(): list(value)
                                for key, value in config['window_sizes'].items()})
            params['window_sizes_by_category'] = by_category

        return cls(**params)


@contextmanager
def stage_timer(metrics: StitchingMetrics, attribute: str):
    """Record the wall-clock time of a stage, even when it raises"""
    start = time.perf_counter()
    try:
        yield
    finally:
        setattr(metrics, attribute, time.perf_counter() - start)


def annotate_baseline_deviation(results: List[StitchingMetrics],
                                baseline_name: str) -> List[StitchingMetrics]:
    """
    Compare each run's homography with the baseline detector's on the same set

    The deviation is the mean distance between the reference image corners
    mapped by the two homographies. Pass the runs of a single image set;
    failed runs are returned unchanged.

    Returns:
        New metrics records; runs without a usable baseline are unchanged
    """
    baseline = next((m for m in results
                     if m.algorithm_name == baseline_name and m.stitching_success), None)
    if baseline is None:
        return list(results)

    annotated = []
    for m in results:
        if m.stitching_success and m.homography is not None:
            deviation = corner_deviation(m.homography, baseline.homography,
                                         m.reference_width, m.reference_height)
            m = dataclasses.replace(m, baseline_deviation=deviation)
        annotated.append(m)

    return annotated


class BenchmarkRunner:
    """
    Automated stitching benchmark over detectors and image sets

    Each (image set, detector) run goes through detection, description,
    matching, RANSAC homography and warp-and-blend. A failing run is recorded
    in its metrics and never stops the sweep.
    """

    def __init__(self, config: Optional[BenchmarkConfig] = None):
        self.config = config or BenchmarkConfig()
        self.detectors: List[DetectorConfig] = []

    def add_detector(self, name: str, detector, norm: int,
                     matcher_type: Optional[MatcherType] = None):
        self.detectors.append(DetectorConfig(name, detector, norm,
                                             matcher_type or self.config.matcher_type))

    def clear_detectors(self):
        self.detectors = []

    def select_window_sizes(self, image: np.ndarray) -> List[int]:
        """Window sizes for the local-peak detectors on an image set"""
        if self.config.window_sizes:
            return list(self.config.window_sizes)

        if self.config.auto_window_sizes:
            suggestions = suggest_window_sizes(to_grayscale(image), self.config.auto_window_peaks)
            sizes = sorted({s.window_size for s in suggestions})
            if sizes:
                return sizes

        height, width = image.shape[:2]
        category = get_image_size_category(width, height)
        return list(self.config.window_sizes_by_category[category.value.lower()])

    def run_single_benchmark(self,
                             dataset_name: str,
                             reference: np.ndarray,
                             registered: np.ndarray,
                             detector_config: DetectorConfig,
                             window_sizes: Sequence[int] = (),
                             output_dir: Optional[str] = None) -> StitchingMetrics:
        """
        Run the stitching pipeline for one detector on one image pair

        Args:
            dataset_name: Image set name
            reference: Reference image (BGR or grayscale)
            registered: Registered image (BGR or grayscale)
            detector_config: Detector and matcher settings
            window_sizes: Local-peak window sizes, recorded in the metrics
            output_dir: Directory for the stitched image (None: not saved)

        Returns:
            Completed metrics record
        """
        ref_h, ref_w = reference.shape[:2]
        reg_h, reg_w = registered.shape[:2]

        metrics = StitchingMetrics(
            dataset_name=dataset_name,
            algorithm_name=detector_config.name,
            size_category=get_image_size_category(ref_w, ref_h),
            reference_width=ref_w,
            reference_height=ref_h,
            registered_width=reg_w,
            registered_height=reg_h,
            window_sizes=join_ints(window_sizes),
            matcher_type=detector_config.matcher_type.value,
            keypoint_policy=KEYPOINT_POLICY_FAIL,
        )

        with stage_timer(metrics, 'total_stitching_time'):
            try:
                self._run_pipeline(metrics, reference, registered, detector_config, output_dir)
            except Exception as e:
                metrics.fail(FailureReason.EXCEPTION)
                metrics.failure_reason = f"Exception: {e}"

        return metrics

    def _run_pipeline(self, metrics: StitchingMetrics, reference: np.ndarray,
                      registered: np.ndarray, detector_config: DetectorConfig,
                      output_dir: Optional[str]) -> None:
        detector = detector_config.detector
        gray1 = to_grayscale(reference)
        gray2 = to_grayscale(registered)

        with stage_timer(metrics, 'detection_time_reference'):
            kpts1 = list(detector.detect(gray1, None))
        metrics.num_keypoints_reference = len(kpts1)

        with stage_timer(metrics, 'detection_time_registered'):
            kpts2 = list(detector.detect(gray2, None))
        metrics.num_keypoints_registered = len(kpts2)

        if not kpts1 or not kpts2:
            metrics.fail(FailureReason.EMPTY_KEYPOINTS)
            return

        limit = self.config.max_keypoints_bf
        if detector_config.matcher_type == MatcherType.BRUTE_FORCE and \
                (len(kpts1) > limit or len(kpts2) > limit):
            metrics.fail(FailureReason.TOO_MANY_KEYPOINTS,
                         f"(ref={len(kpts1)}, reg={len(kpts2)}, limit={limit})")
            return

        with stage_timer(metrics, 'descriptor_time_reference'):
            kpts1, desc1 = detector.compute(gray1, kpts1)

        with stage_timer(metrics, 'descriptor_time_registered'):
            kpts2, desc2 = detector.compute(gray2, kpts2)

        # Extractors may drop keypoints they cannot describe
        metrics.num_keypoints_reference = len(kpts1)
        metrics.num_keypoints_registered = len(kpts2)

        if desc1 is None or desc2 is None or len(desc1) == 0 or len(desc2) == 0:
            metrics.fail(FailureReason.EMPTY_DESCRIPTORS)
            return

        with stage_timer(metrics, 'matching_time'):
            matcher = create_matcher(detector_config.norm, detector_config.matcher_type,
                                     self.config.cross_check)
            matches = match_descriptors(matcher, desc1, desc2, detector_config.norm)
        metrics.num_matches = len(matches)

        if len(matches) < MIN_MATCHES:
            metrics.fail(FailureReason.INSUFFICIENT_MATCHES, f"(<{MIN_MATCHES})")
            return

        pts1, pts2 = matched_points(kpts1, kpts2, matches)

        with stage_timer(metrics, 'homography_time'):
            H, inlier_mask = estimate_homography(pts1, pts2,
                                                 self.config.ransac_threshold,
                                                 self.config.ransac_max_iters,
                                                 self.config.rng_seed)
        metrics.num_inliers = int(np.count_nonzero(inlier_mask))

        if H is None:
            metrics.fail(FailureReason.HOMOGRAPHY_FAILED)
            return

        metrics.homography = H
        metrics.reprojection_error = reprojection_error(H, pts1[inlier_mask], pts2[inlier_mask])

        # H maps reference onto registered: the registered image is the fixed frame
        with stage_timer(metrics, 'warping_time'):
            stitched = warp_and_blend(registered, reference, H)

        metrics.stitching_success = True

        if output_dir and self.config.save_stitched:
            os.makedirs(output_dir, exist_ok=True)
            out_file = os.path.join(output_dir,
                                    f"{metrics.dataset_name}_{metrics.algorithm_name}_stitched.jpg")
            cv2.imwrite(out_file, stitched)

    def run_all_detectors(self,
                          dataset_name: str,
                          reference: np.ndarray,
                          registered: np.ndarray,
                          window_sizes: Sequence[int] = (),
                          output_dir: Optional[str] = None) -> List[StitchingMetrics]:
        """Run every registered detector on one image pair"""
        results = []

        for detector_config in self.detectors:
            logger.info("  Running %s...", detector_config.name)

            metrics = self.run_single_benchmark(dataset_name, reference, registered,
                                                detector_config, window_sizes, output_dir)

            if metrics.stitching_success:
                logger.info("  %s done (%ss, %d/%d keypoints)", detector_config.name,
                            format_time(metrics.total_stitching_time),
                            metrics.num_keypoints_reference, metrics.num_keypoints_registered)
            else:
                logger.info("  %s failed: %s", detector_config.name, metrics.failure_reason)

            results.append(metrics)

        return annotate_baseline_deviation(results, self.config.baseline_detector)

    def run_on_directory(self,
                         image_dir: str,
                         set_names: Optional[Iterable[str]] = None,
                         detector_filters: Optional[Dict[str, FrozenSet[str]]] = None,
                         output_dir: Optional[str] = None) -> List[StitchingMetrics]:
        """
        Benchmark all image sets under a directory

        Detectors are rebuilt for every set because the local-peak window
        sizes depend on the image resolution. Sets whose images cannot be
        loaded are skipped.

        Args:
            image_dir: Directory with one sub-directory per image set
            set_names: Only run these sets (None: all)
            detector_filters: Per-set detector selection from parse_detector_filters
            output_dir: Directory for stitched images

        Returns:
            Metrics of all runs, in set then detector order
        """
        all_results: List[StitchingMetrics] = []

        try:
            dataset = ImageSetDataset(image_dir, set_names)
        except OSError as e:
            logger.error("Error: %s", e)
            return all_results

        for set_name in dataset.set_names:
            logger.info("Processing: %s", set_name)

            try:
                sample = dataset.load(set_name)
            except (OSError, ValueError) as e:
                logger.warning("  Skipping %s: %s", set_name, e)
                continue

            reference, registered = sample['reference'], sample['registered']
            logger.info("  Reference: %dx%d, Registered: %dx%d",
                        reference.shape[1], reference.shape[0],
                        registered.shape[1], registered.shape[0])

            window_sizes = self.select_window_sizes(reference)
            logger.info("  Using window sizes L = %s", join_ints(window_sizes))

            self.detectors = build_detectors(window_sizes,
                                             detectors_for_set(set_name, detector_filters),
                                             self.config.lp_params,
                                             self.config.matcher_type)

            all_results.extend(self.run_all_detectors(set_name, reference, registered,
                                                      window_sizes, output_dir))

        return all_results
