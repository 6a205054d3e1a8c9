import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence

import cv2

from ..models.lpsift import LPORB, LPSIFT
from .stitching import MatcherType

logger = logging.getLogger(__name__)

ALL_SETS = "*"


class ConfigurationError(ValueError):
    """Invalid benchmark configuration (filters, detector names, window sizes)"""


@dataclass
class DetectorConfig:
    """A detector under benchmark and how its descriptors are matched"""

    name: str
    detector: Any  # object with the cv2.Feature2D detect/compute interface
    norm: int
    matcher_type: MatcherType = MatcherType.BRUTE_FORCE


def _create_surf():
    # Only present in opencv-contrib builds with the non-free modules enabled
    return cv2.xfeatures2d.SURF_create()


# name -> (factory(window_sizes, lp_params), norm)
BASELINE_DETECTORS: Dict[str, tuple] = {
    "SIFT": (lambda sizes, params: cv2.SIFT_create(), cv2.NORM_L2),
    "ORB": (lambda sizes, params: cv2.ORB_create(nfeatures=250000), cv2.NORM_HAMMING),
    "BRISK": (lambda sizes, params: cv2.BRISK_create(), cv2.NORM_HAMMING),
    "SURF": (lambda sizes, params: _create_surf(), cv2.NORM_L2),
}

# The norm of local-peak detectors follows their descriptor mode
LOCAL_PEAK_DETECTORS: Dict[str, tuple] = {
    "LP-SIFT": (lambda sizes, params: LPSIFT(sizes, **params), None),
    "LP-ORB": (lambda sizes, params: LPORB(sizes, **dict(params, descriptor="orb")), None),
}

DETECTOR_NAMES = tuple(BASELINE_DETECTORS) + tuple(LOCAL_PEAK_DETECTORS)


def validate_detector_names(names: Iterable[str]) -> List[str]:
    names = [name.strip() for name in names]
    unknown = [name for name in names if name not in DETECTOR_NAMES]
    if unknown:
        raise ConfigurationError(
            f"Unknown detector name(s): {', '.join(unknown)}; "
            f"available: {', '.join(DETECTOR_NAMES)}"
        )
    return names


def build_detectors(window_sizes: Sequence[int],
                    names: Optional[Iterable[str]] = None,
                    lp_params: Optional[Dict] = None,
                    matcher_type: MatcherType = MatcherType.BRUTE_FORCE) -> List[DetectorConfig]:
    """
    Instantiate the detectors to benchmark on one image set

    Args:
        window_sizes: Window sizes for the local-peak detectors
        names: Detector names to include (None: all)
        lp_params: Extra keyword arguments for LPSIFT / LPORB
        matcher_type: Matcher used for every detector

    Returns:
        Detector configurations in registry order; baselines that cannot be
        created in this OpenCV build are skipped with a warning
    """
    selected = set(validate_detector_names(names)) if names is not None else set(DETECTOR_NAMES)
    lp_params = dict(lp_params or {})
    lp_params.pop('window_sizes', None)

    configs = []
    for registry in (BASELINE_DETECTORS, LOCAL_PEAK_DETECTORS):
        for name, (factory, norm) in registry.items():
            if name not in selected:
                continue
            try:
                detector = factory(list(window_sizes), lp_params)
            except (cv2.error, AttributeError) as e:
                logger.warning("Detector %s unavailable in this OpenCV build: %s", name, e)
                continue
            if norm is None:
                norm = detector.defaultNorm()
            configs.append(DetectorConfig(name, detector, norm, matcher_type))

    return configs


def parse_window_sizes(text: str) -> List[int]:
    """Parse a comma-separated list of positive window sizes"""
    sizes = []
    for token in text.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            value = int(token)
        except ValueError:
            raise ConfigurationError(f"Invalid window size '{token}' in '{text}'") from None
        if value <= 0:
            raise ConfigurationError(f"Window sizes must be positive, got {value}")
        sizes.append(value)

    if not sizes:
        raise ConfigurationError(f"No window sizes in '{text}'")
    return sizes


def parse_detector_filters(entries: Iterable[str]) -> Dict[str, FrozenSet[str]]:
    """
    Parse per-set detector filters

    Each entry has the form ``SET=NAME[,NAME...]``; ``*`` as the set name
    applies to every image set.

    Example:
        ["*=SIFT,LP-SIFT", "boat=ORB"]
    """
    filters: Dict[str, FrozenSet[str]] = {}
    for entry in entries:
        set_name, sep, names = entry.partition("=")
        set_name = set_name.strip()
        if not sep or not set_name:
            raise ConfigurationError(f"Malformed detector filter '{entry}', expected SET=NAME[,NAME...]")

        detector_names = [name for name in names.split(",") if name.strip()]
        if not detector_names:
            raise ConfigurationError(f"Detector filter '{entry}' lists no detectors")

        filters[set_name] = filters.get(set_name, frozenset()) | frozenset(
            validate_detector_names(detector_names)
        )

    return filters


def detectors_for_set(set_name: str,
                      filters: Optional[Dict[str, FrozenSet[str]]]) -> Optional[FrozenSet[str]]:
    """Detector names selected for an image set (None: no restriction)"""
    if not filters:
        return None
    if set_name in filters:
        return filters[set_name]
    return filters.get(ALL_SETS)
