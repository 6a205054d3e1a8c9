from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

import numpy as np

# Size category thresholds in pixels
SMALL_IMAGE_PIXELS = 1_000_000
MEDIUM_IMAGE_PIXELS = 3_000_000


class ImageSizeCategory(Enum):
    SMALL = "Small"    # < 1 MP
    MEDIUM = "Medium"  # 1-3 MP
    LARGE = "Large"    # >= 3 MP


def get_image_size_category(width: int, height: int) -> ImageSizeCategory:
    pixels = int(width) * int(height)
    if pixels < SMALL_IMAGE_PIXELS:
        return ImageSizeCategory.SMALL
    if pixels < MEDIUM_IMAGE_PIXELS:
        return ImageSizeCategory.MEDIUM
    return ImageSizeCategory.LARGE


class FailureReason(Enum):
    EMPTY_KEYPOINTS = "Empty keypoints"
    TOO_MANY_KEYPOINTS = "Too many keypoints"
    EMPTY_DESCRIPTORS = "Empty descriptors"
    INSUFFICIENT_MATCHES = "Insufficient matches"
    HOMOGRAPHY_FAILED = "Homography computation failed"
    EXCEPTION = "Exception"


def format_time(seconds: float) -> str:
    """Seconds with 1/100 precision"""
    return f"{seconds:.2f}"


def join_ints(values: Sequence[int]) -> str:
    return ",".join(str(v) for v in values)


def format_homography(H: Optional[np.ndarray]) -> str:
    if H is None:
        return ""
    rows = [", ".join(f"{value:.4f}" for value in row) for row in np.asarray(H)]
    return "[" + ", ".join(f"[{row}]" for row in rows) + "]"


@dataclass
class StitchingMetrics:
    """Metrics of one (image set, detector) stitching run"""

    dataset_name: str
    algorithm_name: str
    size_category: ImageSizeCategory = ImageSizeCategory.SMALL

    reference_width: int = 0
    reference_height: int = 0
    registered_width: int = 0
    registered_height: int = 0

    num_keypoints_reference: int = 0
    num_keypoints_registered: int = 0
    num_matches: int = 0
    num_inliers: int = 0

    # Seconds
    detection_time_reference: float = 0.0
    detection_time_registered: float = 0.0
    descriptor_time_reference: float = 0.0
    descriptor_time_registered: float = 0.0
    matching_time: float = 0.0
    homography_time: float = 0.0
    warping_time: float = 0.0
    total_stitching_time: float = 0.0

    homography: Optional[np.ndarray] = field(default=None, repr=False)
    reprojection_error: Optional[float] = None
    baseline_deviation: Optional[float] = None

    window_sizes: str = ""
    matcher_type: str = ""
    keypoint_policy: str = ""

    stitching_success: bool = False
    failure: Optional[FailureReason] = None
    failure_reason: str = ""

    @property
    def reference_resolution(self) -> str:
        return f"{self.reference_width}x{self.reference_height}"

    @property
    def registered_resolution(self) -> str:
        return f"{self.registered_width}x{self.registered_height}"

    def fail(self, reason: FailureReason, detail: str = "") -> 'StitchingMetrics':
        """Mark the run as failed with a human-readable reason"""
        self.stitching_success = False
        self.failure = reason
        self.failure_reason = f"{reason.value} {detail}".strip() if detail else reason.value
        return self
