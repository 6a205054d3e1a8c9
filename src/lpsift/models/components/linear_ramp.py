import numpy as np

DEFAULT_ALPHA = 1e-6


def add_linear_ramp(image: np.ndarray, alpha: float = DEFAULT_ALPHA) -> np.ndarray:
    """
    Add a raster-order linear background to break intensity ties

    Pixel (x, y) of the result holds ``image[y, x] + alpha * (y * width + x)``.
    The ramp is injective over raster positions, so two pixels with the same
    source intensity never share a ramped value and every window has a single
    maximum and a single minimum.

    Args:
        image: Single-channel image
        alpha: Ramp slope per raster step (identity when <= 0)

    Returns:
        Float64 working copy; the input is never modified
    """
    working = np.array(image, dtype=np.float64, copy=True)

    if alpha <= 0 or working.size == 0:
        return working

    height, width = working.shape[:2]
    ramp = np.arange(height * width, dtype=np.float64).reshape(height, width)
    working += alpha * ramp

    return working
