from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np
from scipy import fft
from skimage.feature import peak_local_max


@dataclass
class WindowSuggestion:
    x: int
    y: int
    magnitude: float
    radius: float
    window_size: int


def log_magnitude_spectrum(image: np.ndarray) -> np.ndarray:
    """
    Centred log-magnitude spectrum of a grayscale image

    The image is zero-padded to a fast FFT size before the transform.
    """
    if image.ndim == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

    img = image.astype(np.float32)
    rows = fft.next_fast_len(img.shape[0])
    cols = fft.next_fast_len(img.shape[1])
    padded = np.zeros((rows, cols), dtype=np.float32)
    padded[:img.shape[0], :img.shape[1]] = img

    spectrum = fft.fftshift(fft.fft2(padded))
    return np.log1p(np.abs(spectrum)).astype(np.float32)


def _suppress_disc(values: np.ndarray, center_x: int, center_y: int, radius: int) -> None:
    yy, xx = np.ogrid[:values.shape[0], :values.shape[1]]
    values[(xx - center_x) ** 2 + (yy - center_y) ** 2 <= radius ** 2] = 0


def window_for_frequency(dx: int, dy: int, rows: int, cols: int,
                         max_size: Optional[int] = None) -> int:
    """
    Window size matching the spatial period of a frequency offset from DC

    Args:
        dx, dy: Peak offset from the spectrum centre in frequency bins
        rows, cols: Spectrum shape (after padding); one bin is 1/rows or
            1/cols cycles per pixel along its axis
        max_size: Upper bound on the window (default: min(rows, cols))
    """
    if max_size is None:
        max_size = min(rows, cols)
    frequency = np.hypot(dx / cols, dy / rows)
    if frequency <= 0:
        return max_size
    period = 1.0 / frequency
    return int(round(np.clip(period, 2.0, float(max_size))))


def suggest_window_sizes(image: np.ndarray, num_peaks: int = 2,
                         suppress_radius: int = 6, dc_radius: int = 4) -> List[WindowSuggestion]:
    """
    Suggest local-peak window sizes from the dominant image frequencies

    The spectrum of a real image is point-symmetric, so peaks are only
    searched in the upper half plane.

    Args:
        image: Grayscale or BGR image
        num_peaks: Number of spectral peaks to report
        suppress_radius: Minimum distance between reported peaks
        dc_radius: Radius zeroed around the DC component

    Returns:
        Suggestions ordered by decreasing spectral magnitude
    """
    if image is None or image.size == 0:
        return []

    magnitude = log_magnitude_spectrum(image)
    center_x, center_y = magnitude.shape[1] // 2, magnitude.shape[0] // 2
    _suppress_disc(magnitude, center_x, center_y, dc_radius)
    magnitude[center_y + 1:, :] = 0

    peaks = peak_local_max(magnitude, min_distance=max(1, suppress_radius),
                           num_peaks=max(1, num_peaks), exclude_border=False)

    rows, cols = magnitude.shape
    max_size = min(image.shape[:2])
    suggestions = []
    for peak_y, peak_x in peaks:
        dx, dy = int(peak_x - center_x), int(peak_y - center_y)
        suggestions.append(WindowSuggestion(
            x=int(peak_x),
            y=int(peak_y),
            magnitude=float(magnitude[peak_y, peak_x]),
            radius=float(np.hypot(dx, dy)),
            window_size=window_for_frequency(dx, dy, rows, cols, max_size),
        ))

    return suggestions
