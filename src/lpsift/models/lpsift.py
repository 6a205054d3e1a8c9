import logging
from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .components.gradient_descriptor import GradientHistogramDescriptor
from .components.linear_ramp import DEFAULT_ALPHA
from .components.peak_detector import KeypointCandidate, LocalPeakDetector

logger = logging.getLogger(__name__)

DESCRIPTOR_MODES = ('lp', 'sift', 'orb')


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Reduce a BGR image to a single channel; single-channel input is returned as is"""
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    if image.ndim == 3:
        return image[:, :, 0]
    return image


def to_uint8(image: np.ndarray) -> np.ndarray:
    """Saturating conversion to 8-bit, as expected by the OpenCV extractors"""
    if image.dtype == np.uint8:
        return image
    return np.clip(np.rint(image), 0, 255).astype(np.uint8)


class LPSIFT:
    """
    Local-Peak SIFT feature detector

    Pyramid-free alternative to SIFT:
    1. Linear ramp preprocessing to break intensity ties
    2. Multi-scale local-peak detection over fixed-size windows
    3. 64-d gradient histogram descriptor (or a delegated OpenCV descriptor)

    Follows the Python cv2.Feature2D interface (detect / compute /
    detectAndCompute) so it can be benchmarked next to OpenCV detectors.
    """

    def __init__(self,
                 window_sizes: Optional[Sequence[int]] = None,
                 alpha: float = DEFAULT_ALPHA,
                 unique_only: bool = False,
                 sort_by_response: bool = False,
                 descriptor: str = 'lp',
                 radius_policy: str = 'sqrt',
                 radius_exponent: float = 0.75,
                 clip_to_tile: bool = False):
        """
        Initialize LP-SIFT

        Args:
            window_sizes: Interrogation window sizes L (None: detector defaults)
            alpha: Linear ramp slope
            unique_only: Apply the 3x3 uniqueness filter on the source image
            sort_by_response: Sort keypoints by descending response
            descriptor: 'lp' for the gradient histogram, 'sift' or 'orb' to delegate
            radius_policy: Descriptor radius policy ('sqrt' or 'ratio')
            radius_exponent: Exponent for the 'ratio' radius policy
            clip_to_tile: Restrict descriptor sampling to the keypoint's tile
        """
        if descriptor not in DESCRIPTOR_MODES:
            raise ValueError(f"Unknown descriptor mode '{descriptor}', expected one of {DESCRIPTOR_MODES}")

        self.detector = LocalPeakDetector(window_sizes, alpha, unique_only, sort_by_response)
        self.descriptor_mode = descriptor

        max_window = max(self.detector.window_sizes) if self.detector.window_sizes else None
        self.descriptor = GradientHistogramDescriptor(
            radius_policy=radius_policy,
            radius_exponent=radius_exponent,
            max_window_size=max_window,
            clip_to_tile=clip_to_tile,
        )
        self.delegate = self._create_delegate(descriptor)

    @classmethod
    def from_config(cls, config: Dict, **overrides) -> 'LPSIFT':
        """Build from a 'detector' configuration section"""
        params = dict(config)
        params.update(overrides)
        return cls(**params)

    @staticmethod
    def _create_delegate(mode: str):
        if mode == 'sift':
            return cv2.SIFT_create()
        if mode == 'orb':
            return cv2.ORB_create()
        return None

    @property
    def window_sizes(self) -> List[int]:
        return list(self.detector.window_sizes)

    def getDefaultName(self) -> str:
        return "Feature2D.LPSIFT"

    def descriptorSize(self) -> int:
        if self.delegate is not None:
            return self.delegate.descriptorSize()
        return self.descriptor.get_descriptor_size()

    def descriptorType(self) -> int:
        if self.delegate is not None:
            return self.delegate.descriptorType()
        return cv2.CV_32F

    def defaultNorm(self) -> int:
        if self.delegate is not None:
            return self.delegate.defaultNorm()
        return cv2.NORM_L2

    def detect_candidates(self, image: np.ndarray) -> List[KeypointCandidate]:
        """Run ramp + local-peak detection, returning keypoint candidates"""
        if image is None or image.size == 0:
            return []

        candidates = self.detector.detect(to_grayscale(image))
        logger.debug("%s: %d keypoints for window sizes %s",
                     self.getDefaultName(), len(candidates), self.window_sizes)
        return candidates

    def detect(self, image: np.ndarray, mask: Optional[np.ndarray] = None) -> List[cv2.KeyPoint]:
        """
        Detect local-peak keypoints

        Args:
            image: Grayscale or BGR image
            mask: Accepted for interface compatibility, not used

        Returns:
            List of cv2.KeyPoint with class_id holding the window size
        """
        return [candidate.to_keypoint() for candidate in self.detect_candidates(image)]

    def compute(self, image: np.ndarray,
                keypoints: Sequence[cv2.KeyPoint]) -> Tuple[List[cv2.KeyPoint], np.ndarray]:
        """
        Compute descriptors for the given keypoints

        Args:
            image: Grayscale or BGR image
            keypoints: Keypoints, typically from detect()

        Returns:
            keypoints: Keypoints the descriptors belong to (a delegated
                extractor may drop some)
            descriptors: Array [N, descriptorSize()]
        """
        keypoints = list(keypoints)
        if len(keypoints) == 0 or image is None or image.size == 0:
            return keypoints, self._empty_descriptors()

        gray = to_grayscale(image)

        if self.delegate is None:
            return keypoints, self.descriptor.describe(gray, keypoints)

        # Delegated extractors see (x, y, size, angle) at full resolution
        prepared = [cv2.KeyPoint(kp.pt[0], kp.pt[1], kp.size, kp.angle,
                                 kp.response, 0, kp.class_id) for kp in keypoints]
        described, descriptors = self.delegate.compute(to_uint8(gray), prepared)

        if descriptors is None:
            return list(described), self._empty_descriptors()
        return list(described), descriptors

    def detectAndCompute(self, image: np.ndarray, mask: Optional[np.ndarray] = None,
                         keypoints: Optional[Sequence[cv2.KeyPoint]] = None,
                         useProvidedKeypoints: bool = False) -> Tuple[List[cv2.KeyPoint], np.ndarray]:
        """Detect (unless keypoints are provided) and describe in one call"""
        if not useProvidedKeypoints or keypoints is None:
            keypoints = self.detect(image, mask)

        return self.compute(image, keypoints)

    def _empty_descriptors(self) -> np.ndarray:
        dtype = np.uint8 if self.descriptorType() == cv2.CV_8U else np.float32
        return np.empty((0, self.descriptorSize()), dtype=dtype)


class LPORB(LPSIFT):
    """Local-peak detection with ORB descriptors"""

    def __init__(self, window_sizes: Optional[Sequence[int]] = None, **kwargs):
        kwargs.setdefault('descriptor', 'orb')
        super().__init__(window_sizes, **kwargs)

    def getDefaultName(self) -> str:
        return "Feature2D.LPORB"
