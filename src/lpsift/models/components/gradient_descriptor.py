import numpy as np
import cv2
from typing import Optional, Sequence, Tuple

from .peak_detector import KeypointCandidate

RADIUS_POLICIES = ('sqrt', 'ratio')


class GradientHistogramDescriptor:
    """
    Local-peak gradient histogram descriptor

    A 4x4 spatial grid around each keypoint, each cell holding a 4-bin
    histogram of signed gradient components (+dx, +dy, -dx, -dy). The
    neighbourhood radius grows with the window size that produced the
    keypoint and is bounded by that window's tile.
    """

    def __init__(self,
                 num_cells: int = 4,
                 num_bins: int = 4,
                 radius_policy: str = 'sqrt',
                 radius_exponent: float = 0.75,
                 max_window_size: Optional[int] = None,
                 clip_to_tile: bool = False,
                 clip_ratio: float = 0.2,
                 eps: float = 1e-7):
        """
        Initialize descriptor parameters

        Args:
            num_cells: Spatial cells per axis (d)
            num_bins: Gradient bins per cell (n); only 4 is meaningful
            radius_policy: 'sqrt' (3 * sqrt(L)) or 'ratio' (power law on L / L_max)
            radius_exponent: Exponent of the 'ratio' policy
            max_window_size: L_max for the 'ratio' policy
            clip_to_tile: Sample gradients only inside the keypoint's tile
            clip_ratio: Saturation level relative to the descriptor norm
            eps: Norms at or below this value skip normalization
        """
        if radius_policy not in RADIUS_POLICIES:
            raise ValueError(f"Unknown radius policy '{radius_policy}', expected one of {RADIUS_POLICIES}")
        if num_bins != 4:
            raise ValueError("The gradient histogram uses exactly 4 bins (+dx, +dy, -dx, -dy)")

        self.num_cells = num_cells
        self.num_bins = num_bins
        self.radius_policy = radius_policy
        self.radius_exponent = radius_exponent
        self.max_window_size = max_window_size
        self.clip_to_tile = clip_to_tile
        self.clip_ratio = clip_ratio
        self.eps = eps

    def get_descriptor_size(self) -> int:
        """Get the size of the descriptor"""
        return self.num_cells * self.num_cells * self.num_bins

    def compute_gradients(self, image: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Central differences on the image interior

        Args:
            image: Grayscale image

        Returns:
            dx: I(x+1, y) - I(x-1, y), zero within 1 px of the border
            dy: I(x, y-1) - I(x, y+1), zero within 1 px of the border
        """
        img = image.astype(np.float32)
        dx = np.zeros_like(img)
        dy = np.zeros_like(img)

        if img.shape[0] > 2 and img.shape[1] > 2:
            dx[1:-1, 1:-1] = img[1:-1, 2:] - img[1:-1, :-2]
            dy[1:-1, 1:-1] = img[:-2, 1:-1] - img[2:, 1:-1]

        return dx, dy

    def histogram_width(self, window_size: int) -> float:
        """Histogram width for a window size under the configured policy"""
        if self.radius_policy == 'ratio' and self.max_window_size:
            ratio = window_size / float(self.max_window_size)
            return 3.0 * np.sqrt(self.max_window_size) * ratio ** self.radius_exponent

        return 3.0 * np.sqrt(window_size)

    def descriptor_radius(self, window_size: int, tile_height: int, tile_width: int) -> int:
        """Neighbourhood half-width, clamped to the tile diagonal and to one pixel per cell"""
        radius = int(round(self.histogram_width(window_size) * self.num_cells))
        radius = min(radius, int(np.floor(np.sqrt(tile_height ** 2 + tile_width ** 2))))
        return max(radius, self.num_cells)

    def compute_descriptor(self, dx: np.ndarray, dy: np.ndarray,
                           keypoint: KeypointCandidate) -> np.ndarray:
        """
        Compute the descriptor of a single keypoint

        Args:
            dx, dy: Image gradients from compute_gradients
            keypoint: Keypoint with its window size

        Returns:
            Descriptor vector of length d * d * n
        """
        height, width = dx.shape
        descriptor = np.zeros(self.get_descriptor_size(), dtype=np.float32)

        window_size = keypoint.window_size
        if window_size <= 0:
            return descriptor

        # Tile containing the keypoint, clipped to the image
        tile_x = (keypoint.x // window_size) * window_size
        tile_y = (keypoint.y // window_size) * window_size
        tile_w = min(window_size, width - tile_x)
        tile_h = min(window_size, height - tile_y)

        if tile_w <= 2 or tile_h <= 2:
            return descriptor

        radius = self.descriptor_radius(window_size, tile_h, tile_w)

        if self.clip_to_tile:
            bounds = (tile_y + 1, tile_y + tile_h - 1, tile_x + 1, tile_x + tile_w - 1)
        else:
            bounds = (0, height, 0, width)

        y0 = max(keypoint.y - radius, bounds[0])
        y1 = min(keypoint.y + radius, bounds[1])
        x0 = max(keypoint.x - radius, bounds[2])
        x1 = min(keypoint.x + radius, bounds[3])

        if y0 >= y1 or x0 >= x1:
            return descriptor

        patch_dx = dx[y0:y1, x0:x1]
        patch_dy = dy[y0:y1, x0:x1]

        # Cell of every sampled pixel in the 2r x 2r grid
        cell_side = 2.0 * radius / self.num_cells
        rows = ((np.arange(y0, y1) - (keypoint.y - radius)) / cell_side).astype(int)
        cols = ((np.arange(x0, x1) - (keypoint.x - radius)) / cell_side).astype(int)
        rows = np.clip(rows, 0, self.num_cells - 1)
        cols = np.clip(cols, 0, self.num_cells - 1)
        cells = (rows[:, np.newaxis] * self.num_cells + cols[np.newaxis, :]).ravel()

        flat_dx = patch_dx.ravel()
        flat_dy = patch_dy.ravel()
        num_spatial = self.num_cells * self.num_cells

        hist = np.stack([
            np.bincount(cells, weights=np.where(flat_dx >= 0, flat_dx, 0), minlength=num_spatial),
            np.bincount(cells, weights=np.where(flat_dy >= 0, flat_dy, 0), minlength=num_spatial),
            np.bincount(cells, weights=np.where(flat_dx < 0, flat_dx, 0), minlength=num_spatial),
            np.bincount(cells, weights=np.where(flat_dy < 0, flat_dy, 0), minlength=num_spatial),
        ], axis=1)

        return self.normalize(hist.ravel())

    def normalize(self, descriptor: np.ndarray) -> np.ndarray:
        """
        L2-normalize, saturate dominant components, renormalize

        Clipping to +-clip_ratio of the norm before the final division is the
        same as normalizing, clipping to +-clip_ratio and normalizing again.
        """
        descriptor = np.asarray(descriptor, dtype=np.float64)

        norm = np.linalg.norm(descriptor)
        if norm <= self.eps:
            return descriptor.astype(np.float32)

        threshold = self.clip_ratio * norm
        descriptor = np.clip(descriptor, -threshold, threshold)

        norm = np.linalg.norm(descriptor)
        if norm > self.eps:
            descriptor = descriptor / norm

        return descriptor.astype(np.float32)

    def describe(self, image: np.ndarray, keypoints: Sequence) -> np.ndarray:
        """
        Compute descriptors for multiple keypoints

        Args:
            image: Grayscale image
            keypoints: KeypointCandidate or cv2.KeyPoint objects

        Returns:
            Array of descriptors [N, 64], float32
        """
        if len(keypoints) == 0 or image is None or image.size == 0:
            return np.empty((0, self.get_descriptor_size()), dtype=np.float32)

        if image.ndim == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

        dx, dy = self.compute_gradients(image)

        descriptors = np.zeros((len(keypoints), self.get_descriptor_size()), dtype=np.float32)
        for i, keypoint in enumerate(keypoints):
            if isinstance(keypoint, cv2.KeyPoint):
                keypoint = KeypointCandidate.from_keypoint(keypoint)
            descriptors[i] = self.compute_descriptor(dx, dy, keypoint)

        return descriptors
