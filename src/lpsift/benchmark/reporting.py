import csv
from typing import List, Sequence

import pandas as pd

from .metrics import StitchingMetrics, format_time

CSV_COLUMNS = [
    "Dataset",
    "Size Category",
    "Algorithm",
    "Reference Resolution",
    "Registered Resolution",
    "Keypoints (Reference)",
    "Keypoints (Registered)",
    "Matches",
    "Inliers",
    "Window Size (L)",
    "Detection Time Ref (s)",
    "Detection Time Reg (s)",
    "Descriptor Time Ref (s)",
    "Descriptor Time Reg (s)",
    "Matching Time (s)",
    "Homography Time (s)",
    "Warping Time (s)",
    "Total Stitching Time (s)",
    "Reprojection Error (px)",
    "Baseline Deviation (px)",
    "Success",
    "Failure Reason",
]


def _optional(value) -> str:
    return "" if value is None else f"{value:.2f}"


def metrics_to_row(m: StitchingMetrics) -> List[str]:
    return [
        m.dataset_name,
        m.size_category.value,
        m.algorithm_name,
        m.reference_resolution,
        m.registered_resolution,
        m.num_keypoints_reference,
        m.num_keypoints_registered,
        m.num_matches,
        m.num_inliers,
        m.window_sizes,
        format_time(m.detection_time_reference),
        format_time(m.detection_time_registered),
        format_time(m.descriptor_time_reference),
        format_time(m.descriptor_time_registered),
        format_time(m.matching_time),
        format_time(m.homography_time),
        format_time(m.warping_time),
        format_time(m.total_stitching_time),
        _optional(m.reprojection_error),
        _optional(m.baseline_deviation),
        "Yes" if m.stitching_success else "No",
        m.failure_reason,
    ]


def metrics_to_frame(results: Sequence[StitchingMetrics]) -> pd.DataFrame:
    """One row per (dataset, detector) run, with report formatting applied"""
    return pd.DataFrame([metrics_to_row(m) for m in results], columns=CSV_COLUMNS)


def export_csv(results: Sequence[StitchingMetrics], filename: str) -> None:
    """Write results as CSV; every field is quoted and embedded quotes doubled"""
    metrics_to_frame(results).to_csv(filename, index=False, quoting=csv.QUOTE_ALL)


def summarize_by_detector(results: Sequence[StitchingMetrics]) -> pd.DataFrame:
    """
    Per-algorithm aggregates

    Success rate is over all runs; keypoint, inlier and timing means are over
    successful runs only.
    """
    columns = ["Algorithm", "Runs", "Success Rate", "Mean Keypoints (Ref)",
               "Mean Inliers", "Mean Total Time (s)"]
    if not results:
        return pd.DataFrame(columns=columns)

    frame = pd.DataFrame({
        "Algorithm": [m.algorithm_name for m in results],
        "success": [m.stitching_success for m in results],
        "keypoints": [m.num_keypoints_reference for m in results],
        "inliers": [m.num_inliers for m in results],
        "total_time": [m.total_stitching_time for m in results],
    })

    grouped = frame.groupby("Algorithm", sort=False)
    successful = frame[frame["success"]].groupby("Algorithm", sort=False)

    summary = pd.DataFrame({
        "Runs": grouped.size(),
        "Success Rate": grouped["success"].mean(),
        "Mean Keypoints (Ref)": successful["keypoints"].mean(),
        "Mean Inliers": successful["inliers"].mean(),
        "Mean Total Time (s)": successful["total_time"].mean(),
    })

    return summary.reset_index()[columns]


def format_summary_table(results: Sequence[StitchingMetrics]) -> str:
    """Fixed-width benchmark table; failed runs show 'x' and 'Failed'"""
    lines = ["=" * 120, "BENCHMARK SUMMARY", "=" * 120]
    lines.append(
        f"{'Dataset':<15}{'Size':<10}{'Algorithm':<12}{'Resolution':<14}"
        f"{'Keypts Ref':<12}{'Keypts Reg':<12}{'Matches':<10}{'Inliers':<10}"
        f"{'Window(L)':<12}{'Time(s)':<12}"
    )
    lines.append("-" * 120)

    for m in results:
        ok = m.stitching_success
        lines.append(
            f"{m.dataset_name[:14]:<15}"
            f"{m.size_category.value:<10}"
            f"{m.algorithm_name:<12}"
            f"{m.reference_resolution:<14}"
            f"{str(m.num_keypoints_reference) if ok else 'x':<12}"
            f"{str(m.num_keypoints_registered) if ok else 'x':<12}"
            f"{str(m.num_matches) if ok else 'x':<10}"
            f"{str(m.num_inliers) if ok else 'x':<10}"
            f"{m.window_sizes:<12}"
            f"{format_time(m.total_stitching_time) if ok else 'Failed':<12}"
        )

    lines.append("=" * 120)
    return "\n".join(lines)


def print_summary_table(results: Sequence[StitchingMetrics]) -> None:
    print("\n" + format_summary_table(results))
