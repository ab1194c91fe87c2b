#!/usr/bin/env python3
"""
Hippocampal T2 statistics.

Reduces the corrected masks to the reported scalars:

- mean T2 over the non-zero voxels of the masked T2 map
- sampled volume (non-zero voxels of the masked T2 map)
- segmentation volume (binarised mask before erosion and CSF exclusion)
- sampling coverage = 100 * sampled / segmentation volume
- asymmetry ratios L:R and R:L from the un-rounded means

Means are rounded to one decimal for display only; ratios are always
computed from the un-rounded values.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from hippot2.analysis.contamination import CorrectedMask
from hippot2.exceptions import EmptyMaskError
from hippot2.tools.base import ImageToolkit, VolumeStatistics

logger = logging.getLogger(__name__)


def round_one_decimal(value: Optional[float]) -> Optional[float]:
    """Round to one decimal place; None stays None."""
    if value is None:
        return None
    return round(float(value), 1)


def coverage_percentage(sampled_mm3: float, total_mm3: float) -> Optional[float]:
    """
    Percentage of the segmentation volume that was sampled.

    Returns None (no samples) when either volume is zero.
    """
    if total_mm3 <= 0 or sampled_mm3 <= 0:
        return None
    return round_one_decimal(100.0 * sampled_mm3 / total_mm3)


@dataclass
class HemisphereStatistics:
    """Statistics of one hemisphere; mean_t2 is None when no voxel was sampled."""
    hemisphere: str
    mean_t2: Optional[float]
    sampled: VolumeStatistics
    segmentation: VolumeStatistics

    @property
    def has_samples(self) -> bool:
        return self.mean_t2 is not None

    @property
    def mean_t2_rounded(self) -> Optional[float]:
        return round_one_decimal(self.mean_t2)

    @property
    def coverage(self) -> Optional[float]:
        return coverage_percentage(self.sampled.volume_mm3, self.segmentation.volume_mm3)


@dataclass
class AsymmetryRatios:
    """Left/right T2 ratios in percent; None when either mean is undefined."""
    left_to_right: Optional[float]
    right_to_left: Optional[float]


def compute_hemisphere_statistics(
    corrected: CorrectedMask,
    toolkit: ImageToolkit,
    fail_on_empty_mask: bool = False
) -> HemisphereStatistics:
    """
    Compute mean T2 and volumes for one hemisphere.

    Parameters
    ----------
    corrected : CorrectedMask
        Output of the contamination correction stage
    toolkit : ImageToolkit
        Statistics collaborator
    fail_on_empty_mask : bool
        Re-raise EmptyMaskError instead of reporting "no samples"

    Returns
    -------
    HemisphereStatistics

    Raises
    ------
    EmptyMaskError
        Only when fail_on_empty_mask is set and no voxel survived correction
    """
    hemisphere = corrected.hemisphere
    segmentation = toolkit.nonzero_volume(corrected.binarised)
    sampled = toolkit.nonzero_volume(corrected.masked_t2)

    try:
        mean_t2 = toolkit.nonzero_mean(corrected.masked_t2, label=hemisphere)
    except EmptyMaskError:
        if fail_on_empty_mask:
            raise
        logger.warning(f"{hemisphere} hippocampal mask is empty after correction: no samples")
        mean_t2 = None

    stats = HemisphereStatistics(
        hemisphere=hemisphere,
        mean_t2=mean_t2,
        sampled=sampled,
        segmentation=segmentation,
    )
    logger.info(
        f"  {hemisphere}: mean T2 = {stats.mean_t2_rounded if stats.has_samples else 'n/a'} ms, "
        f"{sampled.n_voxels} voxels sampled ({sampled.volume_mm3:.1f} of "
        f"{segmentation.volume_mm3:.1f} mm^3)"
    )
    return stats


def compute_asymmetry(left: HemisphereStatistics, right: HemisphereStatistics) -> AsymmetryRatios:
    """Ratios 100*L/R and 100*R/L from the un-rounded means, rounded to one decimal."""
    if not (left.has_samples and right.has_samples) or left.mean_t2 == 0 or right.mean_t2 == 0:
        return AsymmetryRatios(left_to_right=None, right_to_left=None)

    return AsymmetryRatios(
        left_to_right=round_one_decimal(100.0 * left.mean_t2 / right.mean_t2),
        right_to_left=round_one_decimal(100.0 * right.mean_t2 / left.mean_t2),
    )
