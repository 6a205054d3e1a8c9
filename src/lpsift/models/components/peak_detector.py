import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import cv2
import numpy as np
from scipy import ndimage

from .linear_ramp import DEFAULT_ALPHA, add_linear_ramp

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZES = (16, 32, 64, 128, 256)

UNSET_ANGLE = -1.0


@dataclass
class KeypointCandidate:
    """Local peak found in one interrogation window"""

    x: int
    y: int
    window_size: int
    scale_index: int
    response: float
    angle: float = UNSET_ANGLE
    size: float = 0.0

    def __post_init__(self):
        if not self.size:
            self.size = float(self.window_size)

    def to_keypoint(self) -> cv2.KeyPoint:
        # class_id carries the window size through OpenCV containers
        return cv2.KeyPoint(float(self.x), float(self.y), float(self.size),
                            float(self.angle), float(self.response),
                            int(self.scale_index), int(self.window_size))

    @classmethod
    def from_keypoint(cls, keypoint: cv2.KeyPoint) -> 'KeypointCandidate':
        window_size = keypoint.class_id
        if window_size <= 0:
            window_size = int(round(keypoint.size))

        return cls(
            x=int(round(keypoint.pt[0])),
            y=int(round(keypoint.pt[1])),
            window_size=window_size,
            scale_index=max(keypoint.octave, 0),
            response=float(keypoint.response),
            angle=float(keypoint.angle),
            size=float(keypoint.size),
        )


def tile_grid(shape: Tuple[int, int], window_size: int) -> Iterator[Tuple[int, int, int, int]]:
    """
    Enumerate the tiles of an image for one window size

    Tiles start at (0, 0) and step by ``window_size``; the last row and column
    are clipped to the image bounds rather than dropped or padded.

    Args:
        shape: Image shape (height, width)
        window_size: Tile side L

    Yields:
        (x, y, width, height) of every tile in raster order
    """
    height, width = shape[:2]
    if window_size <= 0:
        return

    for y in range(0, height, window_size):
        for x in range(0, width, window_size):
            yield x, y, min(window_size, width - x), min(window_size, height - y)


def tile_labels(shape: Tuple[int, int], window_size: int) -> Tuple[np.ndarray, int]:
    """Label map assigning each pixel its 1-based tile index in raster order"""
    height, width = shape[:2]
    tiles_x = -(-width // window_size)
    tiles_y = -(-height // window_size)

    rows = np.arange(height) // window_size
    cols = np.arange(width) // window_size
    labels = rows[:, np.newaxis] * tiles_x + cols[np.newaxis, :] + 1

    return labels.astype(np.int64), tiles_x * tiles_y


def equal_neighbor_counts(image: np.ndarray) -> np.ndarray:
    """
    Count, for every pixel, the pixels of its 3x3 neighbourhood with the same value

    The neighbourhood is clipped at the image borders and includes the pixel
    itself, so an isolated value has a count of exactly 1.
    """
    source = np.asarray(image, dtype=np.float64)
    height, width = source.shape[:2]
    padded = np.pad(source, 1, mode='constant', constant_values=np.nan)

    counts = np.zeros((height, width), dtype=np.int32)
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            shifted = padded[1 + dy:1 + dy + height, 1 + dx:1 + dx + width]
            counts += shifted == source

    return counts


class LocalPeakDetector:
    """
    Multi-scale local-peak keypoint detector

    Partitions a ramped copy of the image into non-overlapping windows for
    every configured window size and reports the per-window maximum and
    minimum as keypoint candidates.
    """

    def __init__(self,
                 window_sizes: Optional[Sequence[int]] = None,
                 alpha: float = DEFAULT_ALPHA,
                 unique_only: bool = False,
                 sort_by_response: bool = False):
        """
        Initialize the detector

        Args:
            window_sizes: Window sizes L; None selects DEFAULT_WINDOW_SIZES,
                an empty sequence yields no keypoints
            alpha: Slope of the tie-breaking linear ramp
            unique_only: Keep only candidates whose unramped value is unique
                in their 3x3 neighbourhood
            sort_by_response: Sort candidates by descending response
        """
        if window_sizes is None:
            window_sizes = DEFAULT_WINDOW_SIZES

        self.window_sizes = [int(size) for size in window_sizes]
        self.alpha = alpha
        self.unique_only = unique_only
        self.sort_by_response = sort_by_response

    def detect(self, image: np.ndarray) -> List[KeypointCandidate]:
        """
        Extract local-peak candidates from a grayscale image

        Args:
            image: Single-channel image

        Returns:
            Keypoint candidates for all usable window sizes
        """
        if image is None or image.size == 0:
            return []

        source = np.asarray(image)
        height, width = source.shape[:2]
        ramped = add_linear_ramp(source, self.alpha)
        neighbor_counts = equal_neighbor_counts(source) if self.unique_only else None

        candidates = []
        for scale_index, window_size in enumerate(self.window_sizes):
            if window_size <= 0 or (window_size > height and window_size > width):
                logger.debug("Skipping window size %d for %dx%d image", window_size, width, height)
                continue

            window_candidates = self._detect_window(ramped, window_size, scale_index)

            if neighbor_counts is not None:
                window_candidates = [c for c in window_candidates if neighbor_counts[c.y, c.x] == 1]

            logger.debug("Window size %d: %d candidates", window_size, len(window_candidates))
            candidates.extend(window_candidates)

        if self.sort_by_response:
            candidates.sort(key=lambda c: c.response, reverse=True)

        return candidates

    def _detect_window(self, ramped: np.ndarray, window_size: int,
                       scale_index: int) -> List[KeypointCandidate]:
        """Per-tile extrema of the ramped image for one window size"""
        labels, num_tiles = tile_labels(ramped.shape, window_size)
        index = np.arange(1, num_tiles + 1)

        min_values, max_values, min_positions, max_positions = ndimage.extrema(
            ramped, labels=labels, index=index
        )

        min_values = np.atleast_1d(min_values)
        max_values = np.atleast_1d(max_values)
        responses = max_values - min_values

        candidates = []
        for tile_idx in range(num_tiles):
            max_y, max_x = max_positions[tile_idx]
            min_y, min_x = min_positions[tile_idx]
            response = float(responses[tile_idx])

            candidates.append(KeypointCandidate(int(max_x), int(max_y), window_size,
                                                scale_index, response))

            if (min_x, min_y) != (max_x, max_y):
                candidates.append(KeypointCandidate(int(min_x), int(min_y), window_size,
                                                    scale_index, response))

        return candidates
