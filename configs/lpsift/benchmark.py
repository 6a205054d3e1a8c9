# Configuration for LP-SIFT stitching benchmarks

config = {
    "detector": {
        "alpha": 1e-6,  # ramp slope, breaks intensity ties
        "unique_only": False,
        "sort_by_response": False,
        "descriptor": "lp",  # 'lp', 'sift' or 'orb'
        "radius_policy": "sqrt",  # 'sqrt': 3*sqrt(L), 'ratio': scaled by L/Lmax
        "radius_exponent": 0.75,
        "clip_to_tile": False,  # True: sample only inside the tile; not shift-invariant unless shifts are multiples of L
    },

    "benchmark": {
        "matcher_type": "BruteForce",  # or "FLANN"
        "cross_check": True,
        "max_keypoints_bf": 50000,
        "ransac_threshold": 3.0,  # pixels
        "ransac_max_iters": 5000,
        "rng_seed": 12345,
        "baseline_detector": "SIFT",
        "save_stitched": True,
        "auto_window_sizes": False,
        "auto_window_peaks": 2,
    },

    # Window sizes L by image size category (<1MP, <3MP, larger)
    "window_sizes": {
        "small": [16, 32, 64, 128],
        "medium": [32, 64, 128, 256],
        "large": [64, 128, 256, 512],
    },
}
