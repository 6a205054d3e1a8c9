import numpy as np
import cv2
from typing import List, Tuple

# Blob grid in first-image coordinates; 48 px spacing keeps at most one
# bright and one dark blob in any 32 px window
BRIGHT_BLOBS = [(x, y) for y in (60, 108, 156) for x in (60, 108, 156)]
DARK_BLOBS = [(x, y) for y in (84, 132, 180) for x in (84, 132, 180)]


def create_textured_canvas(height: int, width: int, seed: int = 0,
                           low: float = 90.0, high: float = 160.0,
                           smoothing: float = 3.0) -> np.ndarray:
    """Smoothed random texture scaled to [low, high]"""
    rng = np.random.RandomState(seed)
    noise = rng.rand(height, width).astype(np.float32)
    texture = cv2.GaussianBlur(noise, (0, 0), smoothing)
    texture = (texture - texture.min()) / (texture.max() - texture.min() + 1e-8)
    return low + texture * (high - low)


def add_blob(canvas: np.ndarray, x: int, y: int, amplitude: float, sigma: float = 2.5) -> None:
    """Add a Gaussian blob centred on integer pixel (x, y), in place"""
    yy, xx = np.mgrid[:canvas.shape[0], :canvas.shape[1]]
    canvas += amplitude * np.exp(-((xx - x) ** 2 + (yy - y) ** 2) / (2 * sigma ** 2))


def create_shifted_pair(size: int = 256, shift: Tuple[int, int] = (10, 5),
                        seed: int = 0) -> Tuple[np.ndarray, np.ndarray, List[Tuple[int, int]]]:
    """
    Create two images related by a pure translation

    Both images are crops of one textured canvas carrying bright and dark
    Gaussian blobs, so every pixel of the overlap is identical in both.

    Args:
        size: Side of the square output images
        shift: (sx, sy); content at (x, y) in the first image appears at
            (x + sx, y + sy) in the second
        seed: Texture seed

    Returns:
        image1, image2: uint8 grayscale images
        blobs: Blob centres in first-image coordinates
    """
    shift_x, shift_y = shift
    pad = max(abs(shift_x), abs(shift_y)) + 1
    canvas = create_textured_canvas(size + 2 * pad, size + 2 * pad, seed=seed)

    for x, y in BRIGHT_BLOBS:
        add_blob(canvas, x + pad, y + pad, 90.0)
    for x, y in DARK_BLOBS:
        add_blob(canvas, x + pad, y + pad, -85.0)

    canvas = np.clip(np.rint(canvas), 0, 255).astype(np.uint8)

    image1 = canvas[pad:pad + size, pad:pad + size].copy()
    image2 = canvas[pad - shift_y:pad - shift_y + size, pad - shift_x:pad - shift_x + size].copy()

    return image1, image2, BRIGHT_BLOBS + DARK_BLOBS
