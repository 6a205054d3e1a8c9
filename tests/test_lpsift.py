import pytest
import numpy as np
import cv2
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from lpsift.models.lpsift import LPSIFT, LPORB, to_grayscale
from lpsift.models.components.linear_ramp import add_linear_ramp
from lpsift.models.components.peak_detector import (KeypointCandidate, LocalPeakDetector,
                                                     equal_neighbor_counts, tile_grid)
from lpsift.models.components.gradient_descriptor import GradientHistogramDescriptor


@pytest.fixture
def sample_image():
    """Create a sample test image"""
    np.random.seed(42)
    image = np.random.rand(128, 160) * 255
    image = image.astype(np.uint8)

    cv2.circle(image, (40, 40), 12, 250, -1)
    cv2.circle(image, (110, 80), 15, 10, -1)

    return image


class TestLinearRamp:
    """Test cases for the tie-breaking ramp"""

    def test_ramp_makes_values_distinct(self):
        image = np.full((20, 30), 7, dtype=np.uint8)
        ramped = add_linear_ramp(image, 1e-6)

        assert ramped.dtype == np.float64
        assert len(np.unique(ramped)) == image.size
        # Raster order: later pixels are larger
        assert np.all(np.diff(ramped.ravel()) > 0)

    def test_ramp_preserves_ordering_of_distinct_values(self, sample_image):
        ramped = add_linear_ramp(sample_image, 1e-6)
        source = sample_image.astype(np.float64).ravel()
        order = np.argsort(ramped.ravel(), kind='stable')

        assert np.all(np.diff(source[order]) >= 0)

    def test_identity_cases(self, sample_image):
        ramped = add_linear_ramp(sample_image, 0.0)
        assert np.array_equal(ramped, sample_image.astype(np.float64))

        empty = add_linear_ramp(np.zeros((0, 0), dtype=np.uint8))
        assert empty.size == 0

    def test_input_not_modified(self, sample_image):
        original = sample_image.copy()
        add_linear_ramp(sample_image, 1e-3)
        assert np.array_equal(sample_image, original)


class TestLocalPeakDetector:
    """Test cases for multi-scale local-peak detection"""

    def test_tiles_cover_image_exactly_once(self):
        coverage = np.zeros((70, 100), dtype=int)
        for x, y, w, h in tile_grid(coverage.shape, 32):
            assert w > 0 and h > 0
            coverage[y:y + h, x:x + w] += 1

        assert np.all(coverage == 1)
        assert len(list(tile_grid(coverage.shape, 32))) == 4 * 3

    def test_one_max_and_min_per_tile(self, sample_image):
        detector = LocalPeakDetector([32])
        candidates = detector.detect(sample_image)

        # 160x128 gives 5x4 full tiles
        assert len(candidates) == 2 * 20
        for c in candidates:
            assert 0 <= c.x < sample_image.shape[1]
            assert 0 <= c.y < sample_image.shape[0]
            assert c.window_size == 32
            assert c.scale_index == 0

    def test_candidates_are_tile_extrema(self, sample_image):
        detector = LocalPeakDetector([32])
        candidates = detector.detect(sample_image)
        ramped = add_linear_ramp(sample_image)

        for c in candidates:
            tile_x, tile_y = (c.x // 32) * 32, (c.y // 32) * 32
            tile = ramped[tile_y:tile_y + 32, tile_x:tile_x + 32]
            assert ramped[c.y, c.x] in (tile.max(), tile.min())

    def test_clipped_boundary_tiles(self):
        image = np.random.RandomState(0).randint(0, 255, (50, 70)).astype(np.uint8)
        candidates = LocalPeakDetector([32]).detect(image)

        # 3x2 tiles, the last row and column clipped
        tiles = {(c.x // 32, c.y // 32) for c in candidates}
        assert tiles == {(x, y) for x in range(3) for y in range(2)}

    def test_scale_index_follows_window_order(self, sample_image):
        candidates = LocalPeakDetector([64, 16]).detect(sample_image)

        assert {c.scale_index for c in candidates if c.window_size == 64} == {0}
        assert {c.scale_index for c in candidates if c.window_size == 16} == {1}

    def test_unusable_window_sizes_are_skipped(self, sample_image):
        assert LocalPeakDetector([]).detect(sample_image) == []
        assert LocalPeakDetector([0, -8]).detect(sample_image) == []
        assert LocalPeakDetector([512]).detect(sample_image) == []

    def test_empty_image(self):
        assert LocalPeakDetector([16]).detect(np.zeros((0, 0), dtype=np.uint8)) == []

    def test_flat_tile_extrema_follow_ramp(self):
        image = np.full((32, 32), 100, dtype=np.uint8)
        candidates = LocalPeakDetector([32]).detect(image)

        # Ramp puts the max at the last pixel and the min at the first
        positions = {(c.x, c.y) for c in candidates}
        assert positions == {(31, 31), (0, 0)}

    def test_uniqueness_filter_on_flat_image(self):
        image = np.full((64, 64), 128, dtype=np.uint8)
        detector = LocalPeakDetector([16, 32], unique_only=True)
        assert detector.detect(image) == []

    def test_uniqueness_filter_keeps_isolated_peaks(self):
        image = np.full((32, 32), 100, dtype=np.uint8)
        image[10, 12] = 200
        image[20, 5] = 20

        candidates = LocalPeakDetector([32], unique_only=True).detect(image)
        assert {(c.x, c.y) for c in candidates} == {(12, 10), (5, 20)}

    def test_equal_neighbor_counts_borders(self):
        counts = equal_neighbor_counts(np.zeros((4, 4)))
        assert counts[0, 0] == 4
        assert counts[0, 1] == 6
        assert counts[1, 1] == 9

    def test_sort_by_response(self, sample_image):
        candidates = LocalPeakDetector([16, 32], sort_by_response=True).detect(sample_image)
        responses = [c.response for c in candidates]
        assert responses == sorted(responses, reverse=True)

    def test_keypoint_conversion(self):
        candidate = KeypointCandidate(x=5, y=7, window_size=64, scale_index=2, response=3.5)
        keypoint = candidate.to_keypoint()

        assert keypoint.pt == (5.0, 7.0)
        assert keypoint.size == 64.0
        assert keypoint.angle == -1.0
        assert keypoint.octave == 2
        assert keypoint.class_id == 64
        assert KeypointCandidate.from_keypoint(keypoint) == candidate


class TestGradientDescriptor:
    """Test cases for the 64-d gradient histogram descriptor"""

    def test_descriptor_shape_and_norm(self, sample_image):
        candidates = LocalPeakDetector([32]).detect(sample_image)
        descriptors = GradientHistogramDescriptor().describe(sample_image, candidates)

        assert descriptors.shape == (len(candidates), 64)
        assert descriptors.dtype == np.float32

        norms = np.linalg.norm(descriptors, axis=1)
        nonzero = norms > 0
        assert np.any(nonzero)
        assert np.allclose(norms[nonzero], 1.0, atol=1e-5)

    def test_normalize_clips_dominant_components(self):
        descriptor = GradientHistogramDescriptor()
        vector = np.zeros(64)
        vector[0] = 10.0
        vector[1:17] = 1.0

        normalized = descriptor.normalize(vector)
        assert np.isclose(np.linalg.norm(normalized), 1.0, atol=1e-6)
        # Saturated at 0.2 of the original norm
        assert np.isclose(normalized[0] / normalized[1], 0.2 * np.linalg.norm(vector), rtol=1e-5)
        assert normalized[0] < 0.5

    def test_zero_vector_stays_zero(self):
        normalized = GradientHistogramDescriptor().normalize(np.zeros(64))
        assert np.all(normalized == 0)

    def test_flat_image_gives_zero_descriptors(self):
        image = np.full((64, 64), 90, dtype=np.uint8)
        candidates = LocalPeakDetector([32]).detect(image)
        descriptors = GradientHistogramDescriptor().describe(image, candidates)

        assert np.all(descriptors == 0)

    def test_tiny_tile_gives_zero_descriptor(self, sample_image):
        dx, dy = GradientHistogramDescriptor().compute_gradients(sample_image)
        keypoint = KeypointCandidate(x=3, y=3, window_size=2, scale_index=0, response=1.0)

        assert np.all(GradientHistogramDescriptor().compute_descriptor(dx, dy, keypoint) == 0)

    def test_empty_keypoints(self, sample_image):
        assert GradientHistogramDescriptor().describe(sample_image, []).shape == (0, 64)

    def test_gradient_signs(self):
        ramp = np.tile(np.arange(10, dtype=np.float32), (10, 1))
        dx, dy = GradientHistogramDescriptor().compute_gradients(ramp)

        assert np.all(dx[1:-1, 1:-1] == 2.0)
        assert np.all(dy == 0)
        assert np.all(dx[0] == 0) and np.all(dx[:, -1] == 0)

    def test_radius_policies(self):
        sqrt_policy = GradientHistogramDescriptor(radius_policy='sqrt')
        ratio_policy = GradientHistogramDescriptor(radius_policy='ratio', max_window_size=256)

        assert np.isclose(sqrt_policy.histogram_width(64), 24.0)
        assert np.isclose(ratio_policy.histogram_width(256), 48.0)
        assert ratio_policy.histogram_width(64) < sqrt_policy.histogram_width(64)

    def test_radius_clamped_to_tile(self):
        descriptor = GradientHistogramDescriptor()
        assert descriptor.descriptor_radius(32, 32, 32) == 45
        assert descriptor.descriptor_radius(4, 4, 4) >= descriptor.num_cells

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            GradientHistogramDescriptor(radius_policy='linear')
        with pytest.raises(ValueError):
            GradientHistogramDescriptor(num_bins=8)

    def test_translation_invariance(self):
        np.random.seed(3)
        base = cv2.GaussianBlur(np.random.rand(200, 200).astype(np.float32) * 255, (0, 0), 2)
        image1 = base[20:148, 20:148]
        image2 = base[4:132, 4:132]

        # Both keypoints sit on base pixel (80, 80), away from the borders
        kp1 = KeypointCandidate(x=60, y=60, window_size=32, scale_index=0, response=1.0)
        kp2 = KeypointCandidate(x=76, y=76, window_size=32, scale_index=0, response=1.0)
        descriptor = GradientHistogramDescriptor(clip_to_tile=False)

        d1 = descriptor.describe(image1, [kp1])
        d2 = descriptor.describe(image2, [kp2])
        assert np.allclose(d1, d2, atol=1e-6)

    def test_clip_to_tile_ignores_edges_outside_tile(self):
        np.random.seed(5)
        image = cv2.GaussianBlur(np.random.rand(128, 128).astype(np.float32) * 100, (0, 0), 2)
        edged = image.copy()
        # Strong edge right of the keypoint's tile [32, 64) but inside the 45 px radius
        edged[:, 70:] += 150

        keypoint = KeypointCandidate(x=48, y=48, window_size=32, scale_index=0, response=1.0)
        block_local = GradientHistogramDescriptor(clip_to_tile=True)
        full = GradientHistogramDescriptor(clip_to_tile=False)

        assert np.array_equal(block_local.describe(image, [keypoint]),
                              block_local.describe(edged, [keypoint]))
        assert not np.allclose(full.describe(image, [keypoint]),
                               full.describe(edged, [keypoint]))

    def test_clip_to_tile_samples_one_pixel_inside_tile(self):
        keypoint = KeypointCandidate(x=48, y=48, window_size=32, scale_index=0, response=1.0)
        block_local = GradientHistogramDescriptor(clip_to_tile=True)
        full = GradientHistogramDescriptor(clip_to_tile=False)

        # Gradients only on the outermost rows and columns of the tile
        dx = np.zeros((128, 128), dtype=np.float32)
        dx[32:64, [32, 63]] = 10.0
        dx[[32, 63], 32:64] = 10.0
        dy = np.zeros_like(dx)

        assert np.all(block_local.compute_descriptor(dx, dy, keypoint) == 0)
        assert np.any(full.compute_descriptor(dx, dy, keypoint) != 0)

        dx[33, 33] = 10.0
        dx[62, 62] = -10.0
        descriptor = block_local.compute_descriptor(dx, dy, keypoint)
        assert np.isclose(np.linalg.norm(descriptor), 1.0, atol=1e-6)


class TestLPSIFT:
    """Test cases for the Feature2D-style facade"""

    @pytest.fixture
    def lpsift(self):
        return LPSIFT(window_sizes=[32, 64])

    def test_detect_returns_keypoints(self, lpsift, sample_image):
        keypoints = lpsift.detect(sample_image, None)

        assert len(keypoints) > 0
        assert all(isinstance(kp, cv2.KeyPoint) for kp in keypoints)
        assert {kp.class_id for kp in keypoints} == {32, 64}

    def test_detect_and_compute(self, lpsift, sample_image):
        keypoints, descriptors = lpsift.detectAndCompute(sample_image, None)

        assert descriptors.shape == (len(keypoints), lpsift.descriptorSize())
        assert lpsift.descriptorSize() == 64
        assert lpsift.descriptorType() == cv2.CV_32F
        assert lpsift.defaultNorm() == cv2.NORM_L2

    def test_compute_matches_detect_and_compute(self, lpsift, sample_image):
        keypoints = lpsift.detect(sample_image)
        _, descriptors = lpsift.compute(sample_image, keypoints)
        _, combined = lpsift.detectAndCompute(sample_image, None)

        assert np.array_equal(descriptors, combined)

    def test_provided_keypoints(self, lpsift, sample_image):
        keypoints = lpsift.detect(sample_image)[:5]
        used, descriptors = lpsift.detectAndCompute(sample_image, None, keypoints, True)

        assert len(used) == 5
        assert descriptors.shape == (5, 64)

    def test_color_input(self, lpsift, sample_image):
        color = cv2.cvtColor(sample_image, cv2.COLOR_GRAY2BGR)
        assert len(lpsift.detect(color)) == len(lpsift.detect(sample_image))
        assert to_grayscale(color).shape == sample_image.shape

    def test_empty_inputs(self, lpsift):
        empty = np.zeros((0, 0), dtype=np.uint8)
        keypoints, descriptors = lpsift.detectAndCompute(empty, None)

        assert keypoints == []
        assert descriptors.shape == (0, 64)

    def test_lporb_descriptors(self, sample_image):
        lporb = LPORB(window_sizes=[32])
        keypoints, descriptors = lporb.detectAndCompute(sample_image, None)

        assert lporb.getDefaultName() == "Feature2D.LPORB"
        assert lporb.defaultNorm() == cv2.NORM_HAMMING
        assert descriptors.dtype == np.uint8
        assert descriptors.shape[1] == 32
        assert len(keypoints) == len(descriptors)

    def test_from_config(self):
        config = {"alpha": 1e-5, "unique_only": True, "radius_policy": "ratio"}
        lpsift = LPSIFT.from_config(config, window_sizes=[16])

        assert lpsift.window_sizes == [16]
        assert lpsift.detector.unique_only
        assert lpsift.descriptor.radius_policy == 'ratio'
        assert lpsift.descriptor.max_window_size == 16

    def test_default_window_sizes(self):
        assert LPSIFT().window_sizes == [16, 32, 64, 128, 256]

    def test_invalid_descriptor_mode(self):
        with pytest.raises(ValueError):
            LPSIFT(descriptor='surf')


if __name__ == "__main__":
    pytest.main([__file__])
