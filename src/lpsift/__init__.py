"""LP-SIFT - Local-Peak SIFT keypoint detection and stitching benchmarks"""

__version__ = "1.0.0"
__author__ = "LP-SIFT Team"

from .models.lpsift import LPSIFT, LPORB
from .benchmark.runner import BenchmarkConfig, BenchmarkRunner
from .utils.visualization import LPSIFTVisualizer

__all__ = ['LPSIFT', 'LPORB', 'BenchmarkConfig', 'BenchmarkRunner', 'LPSIFTVisualizer']
