#!/usr/bin/env python3
"""
CSF contamination correction of the resampled hippocampal masks.

For each hemisphere:
1. Binarise the interpolated mask at a high threshold (0.95), keeping only
   voxels almost entirely inside the segmentation
2. Erode by one voxel in-plane (3x3x1 kernel); the slice direction of
   clinical T2 maps is too thick to erode through
3. Remove voxels whose T2 exceeds the CSF threshold (default 170 ms),
   following Winston et al., ISMRM 2017
4. Multiply the T2 map by the corrected mask and clear NaNs

Each step can only remove voxels: corrected ⊆ eroded ⊆ binarised.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from hippot2.tools.base import ImageToolkit, nifti_path

logger = logging.getLogger(__name__)


@dataclass
class CorrectedMask:
    """Intermediate and final masks of one hemisphere, all in T2-map space."""
    hemisphere: str
    binarised: Path
    eroded: Path
    corrected: Path
    masked_t2: Path


def build_low_t2_mask(
    t2map: Path,
    work_dir: Path,
    toolkit: ImageToolkit,
    csf_threshold: float = 170.0,
    extension: str = '.nii.gz'
) -> Path:
    """Binary mask of T2-map voxels at or below `csf_threshold` ms."""
    out_file = nifti_path(Path(work_dir) / 'low_T2', extension)
    toolkit.threshold(t2map, out_file, upper=csf_threshold, binarise=True)
    logger.info(f"Low-T2 mask (<= {csf_threshold:g} ms): {out_file.name}")
    return out_file


def correct_contamination(
    resampled: Path,
    t2map: Path,
    low_t2_mask: Path,
    work_dir: Path,
    toolkit: ImageToolkit,
    hemisphere: str,
    binarise_threshold: float = 0.95,
    extension: str = '.nii.gz'
) -> CorrectedMask:
    """
    Turn an interpolated hemisphere mask into a CSF-corrected binary ROI.

    Parameters
    ----------
    resampled : Path
        Continuous-valued segmentation in T2-map space
    t2map : Path
        T2 map in ms
    low_t2_mask : Path
        Output of build_low_t2_mask
    work_dir : Path
        Run working directory
    toolkit : ImageToolkit
        Voxel arithmetic collaborator
    hemisphere : str
        'L' or 'R'
    binarise_threshold : float
        Fraction of full intensity kept when binarising (default: 0.95)

    Returns
    -------
    CorrectedMask
    """
    prefix = Path(work_dir) / f"hippo_{hemisphere.lower()}_T2"

    binarised = toolkit.threshold(
        resampled, nifti_path(Path(f"{prefix}_bin"), extension),
        lower=binarise_threshold, binarise=True
    )
    eroded = toolkit.erode(binarised, nifti_path(Path(f"{prefix}_eroded"), extension), kernel='2D')
    corrected = toolkit.multiply(eroded, low_t2_mask, nifti_path(Path(f"{prefix}_corrected"), extension))
    masked_t2 = toolkit.multiply(
        corrected, t2map, nifti_path(Path(f"{prefix}_masked"), extension), nan_to_zero=True
    )

    logger.info(f"  {hemisphere}: binarised, eroded in-plane and CSF-corrected")
    return CorrectedMask(
        hemisphere=hemisphere,
        binarised=binarised,
        eroded=eroded,
        corrected=corrected,
        masked_t2=masked_t2,
    )
