from enum import Enum
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

# Minimum matches required for homography estimation
MIN_MATCHES = 4

# RANSAC parameters
RANSAC_THRESHOLD = 3.0
RANSAC_MAX_ITERS = 5000
RNG_SEED = 12345

# FLANN index algorithms
FLANN_INDEX_KDTREE = 1
FLANN_INDEX_LSH = 6


class MatcherType(Enum):
    BRUTE_FORCE = "BruteForce"  # exact, index width limits the keypoint count
    FLANN = "FLANN"             # approximate, no practical keypoint limit


def create_matcher(norm: int, matcher_type: MatcherType = MatcherType.BRUTE_FORCE,
                   cross_check: bool = True):
    """
    Create a descriptor matcher for a distance norm

    Args:
        norm: cv2.NORM_L2 for float descriptors, cv2.NORM_HAMMING for binary ones
        matcher_type: Brute-force or FLANN
        cross_check: Keep only mutual nearest neighbours (brute force only)
    """
    if matcher_type == MatcherType.FLANN:
        if norm in (cv2.NORM_HAMMING, cv2.NORM_HAMMING2):
            index_params = dict(algorithm=FLANN_INDEX_LSH, table_number=6,
                                key_size=12, multi_probe_level=1)
        else:
            index_params = dict(algorithm=FLANN_INDEX_KDTREE, trees=5)
        return cv2.FlannBasedMatcher(index_params, dict(checks=50))

    return cv2.BFMatcher(norm, crossCheck=cross_check)


def match_descriptors(matcher, desc1: np.ndarray, desc2: np.ndarray,
                      norm: int = cv2.NORM_L2) -> List[cv2.DMatch]:
    """Best match in desc2 for every descriptor of desc1"""
    if norm == cv2.NORM_L2:
        desc1 = np.ascontiguousarray(desc1, dtype=np.float32)
        desc2 = np.ascontiguousarray(desc2, dtype=np.float32)

    return list(matcher.match(desc1, desc2))


def matched_points(keypoints1: Sequence[cv2.KeyPoint], keypoints2: Sequence[cv2.KeyPoint],
                   matches: Sequence[cv2.DMatch]) -> Tuple[np.ndarray, np.ndarray]:
    """Pixel coordinates [N, 2] of matched keypoint pairs"""
    pts1 = np.float32([keypoints1[m.queryIdx].pt for m in matches]).reshape(-1, 2)
    pts2 = np.float32([keypoints2[m.trainIdx].pt for m in matches]).reshape(-1, 2)
    return pts1, pts2


def estimate_homography(pts1: np.ndarray, pts2: np.ndarray,
                        threshold: float = RANSAC_THRESHOLD,
                        max_iters: int = RANSAC_MAX_ITERS,
                        seed: int = RNG_SEED) -> Tuple[Optional[np.ndarray], np.ndarray]:
    """
    RANSAC homography mapping pts1 onto pts2

    The OpenCV RNG is reseeded before every call so repeated runs draw the
    same samples.

    Returns:
        H: 3x3 matrix, or None when no model was found
        inlier_mask: Boolean mask over the point pairs
    """
    if len(pts1) < MIN_MATCHES:
        return None, np.zeros(len(pts1), dtype=bool)

    cv2.setRNGSeed(seed)
    H, mask = cv2.findHomography(pts1, pts2, cv2.RANSAC, threshold, maxIters=max_iters)

    if H is None or mask is None:
        return None, np.zeros(len(pts1), dtype=bool)

    return H, mask.ravel().astype(bool)


def reprojection_error(H: np.ndarray, pts1: np.ndarray, pts2: np.ndarray) -> float:
    """Mean distance between H(pts1) and pts2"""
    if len(pts1) == 0:
        return 0.0
    projected = cv2.perspectiveTransform(pts1.reshape(-1, 1, 2).astype(np.float64), H)
    return float(np.mean(np.linalg.norm(projected.reshape(-1, 2) - pts2, axis=1)))


def image_corners(width: int, height: int) -> np.ndarray:
    return np.float64([[0, 0], [width, 0], [width, height], [0, height]])


def corner_deviation(H: np.ndarray, H_ref: np.ndarray, width: int, height: int) -> float:
    """Mean distance between the image corners mapped by two homographies"""
    corners = image_corners(width, height).reshape(-1, 1, 2)
    mapped = cv2.perspectiveTransform(corners, H).reshape(-1, 2)
    mapped_ref = cv2.perspectiveTransform(corners, H_ref).reshape(-1, 2)
    return float(np.mean(np.linalg.norm(mapped - mapped_ref, axis=1)))


def warp_and_blend(fixed: np.ndarray, moving: np.ndarray, H: np.ndarray) -> np.ndarray:
    """
    Stitch two images on a shared canvas

    The moving image is warped by H into the fixed image's frame; the canvas
    is the bounding box of both, shifted so all content has non-negative
    coordinates. The fixed image is pasted on top at an integer offset,
    without resampling or feathering.

    Args:
        fixed: Image defining the output frame
        moving: Image warped by H
        H: 3x3 homography from moving to fixed coordinates

    Returns:
        Stitched canvas with the fixed image's dtype and channels
    """
    fixed_h, fixed_w = fixed.shape[:2]
    moving_h, moving_w = moving.shape[:2]

    corners_fixed = image_corners(fixed_w, fixed_h)
    corners_moving = cv2.perspectiveTransform(
        image_corners(moving_w, moving_h).reshape(-1, 1, 2), H
    ).reshape(-1, 2)

    all_corners = np.vstack([corners_fixed, corners_moving])
    min_x, min_y = all_corners.min(axis=0)
    max_x, max_y = all_corners.max(axis=0)

    offset_x = int(-min_x) if min_x < 0 else 0
    offset_y = int(-min_y) if min_y < 0 else 0

    width = int(max_x - min_x + 1)
    height = int(max_y - min_y + 1)

    T = np.array([[1, 0, offset_x],
                  [0, 1, offset_y],
                  [0, 0, 1]], dtype=np.float64)

    stitched = cv2.warpPerspective(moving, T @ H, (width, height))

    # Paste the fixed image, clipped to the canvas
    paste_h = min(fixed_h, height - offset_y)
    paste_w = min(fixed_w, width - offset_x)
    if paste_h > 0 and paste_w > 0:
        stitched[offset_y:offset_y + paste_h, offset_x:offset_x + paste_w] = fixed[:paste_h, :paste_w]

    return stitched
