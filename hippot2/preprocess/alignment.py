#!/usr/bin/env python3
"""
Spatial alignment of the hippocampal segmentations to the T2 map.

Workflow steps:
1. Brain extraction of the T1 image (BET) and a 3D erosion of its mask
2. Rigid (6 dof) registration of the T1 brain to the T2 map
3. Resampling of each hemisphere's segmentation onto the T2 map grid

After this stage every image lives in T2-map voxel space.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Tuple

from hippot2.tools.base import BrainExtractor, ImageToolkit, nifti_path
from hippot2.tools.registration import RegistrationStrategy

logger = logging.getLogger(__name__)

HEMISPHERES = ('L', 'R')


@dataclass
class AlignmentResult:
    """Outputs of the spatial alignment stage."""
    brain: Path
    brain_mask: Path
    transform: Path
    resampled: Dict[str, Path]


def extract_brain(
    t1: Path,
    work_dir: Path,
    extractor: BrainExtractor,
    toolkit: ImageToolkit,
    frac: float = 0.5
) -> Tuple[Path, Path]:
    """
    Extract the brain from the T1 image and erode its mask once (3D kernel).

    Returns
    -------
    tuple
        (brain image, eroded brain mask)
    """
    brain, brain_mask = extractor.extract(t1, Path(work_dir) / 'T1_bet', frac=frac)
    toolkit.erode(brain_mask, brain_mask, kernel='3D')
    logger.info(f"Brain extracted: {brain.name} (mask eroded once)")
    return brain, brain_mask


def resample_segmentation(
    segmentation: Path,
    hemisphere: str,
    t2map: Path,
    transform: Path,
    work_dir: Path,
    registration: RegistrationStrategy,
    extension: str = '.nii.gz'
) -> Path:
    """Resample one hemisphere's segmentation into T2-map space."""
    out_file = nifti_path(Path(work_dir) / f"hippo_{hemisphere.lower()}_T2", extension)
    registration.resample(segmentation, t2map, transform, out_file)
    logger.info(f"  {hemisphere} segmentation resampled: {out_file.name}")
    return out_file


def align_segmentations(
    t1: Path,
    t2map: Path,
    segmentations: Dict[str, Path],
    work_dir: Path,
    extractor: BrainExtractor,
    registration: RegistrationStrategy,
    toolkit: ImageToolkit,
    bet_frac: float = 0.5,
    use_brain_mask: bool = True,
    extension: str = '.nii.gz'
) -> AlignmentResult:
    """
    Bring both hemisphere segmentations onto the T2 map's voxel grid.

    Parameters
    ----------
    t1 : Path
        Anatomical image the segmentations were drawn on
    t2map : Path
        T2 map (registration target)
    segmentations : dict
        Hemisphere code ('L'/'R') -> segmentation in T1 space
    work_dir : Path
        Run working directory
    extractor, registration, toolkit
        Collaborators performing the external operations
    bet_frac : float
        BET fractional intensity threshold
    use_brain_mask : bool
        Pass the eroded brain mask to the registration as a weighting mask

    Returns
    -------
    AlignmentResult
    """
    work_dir = Path(work_dir)
    logger.info("STEP 1 - Registering T1 scan to T2 map...")

    brain, brain_mask = extract_brain(t1, work_dir, extractor, toolkit, frac=bet_frac)

    transform = work_dir / 'transformT1-2-T2.txt'
    registration.register(
        brain,
        t2map,
        transform,
        moving_mask=brain_mask if use_brain_mask else None
    )
    logger.info(f"Rigid transform ({registration.name}): {transform.name}")

    resampled = {
        hemisphere: resample_segmentation(
            segmentations[hemisphere], hemisphere, t2map, transform, work_dir,
            registration, extension=extension
        )
        for hemisphere in HEMISPHERES
    }

    return AlignmentResult(brain=brain, brain_mask=brain_mask, transform=transform, resampled=resampled)
