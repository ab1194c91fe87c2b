"""
FSL collaborators: BET brain extraction, fslmaths and fslstats.

All commands are run through nipype's FSL interfaces with explicit output
paths, so nothing depends on the process working directory.
"""

import logging
import math
from pathlib import Path
from typing import Optional, Tuple

from nipype.interfaces import fsl

from hippot2.exceptions import EmptyMaskError, ExternalToolFailure
from hippot2.tools.base import (
    BrainExtractor,
    ImageToolkit,
    VolumeStatistics,
    nifti_path,
    run_interface,
)

logger = logging.getLogger(__name__)


def _format_number(value: float) -> str:
    return f"{value:g}"


class FslImageToolkit(ImageToolkit):
    """ImageToolkit backed by fslmaths / fslstats."""

    name = 'fsl'
    required_tools = ('fslmaths', 'fslstats')

    def __init__(self, output_type: str = 'NIFTI_GZ', stage: str = 'image processing'):
        self.output_type = output_type
        self.stage = stage

    def _maths(self, in_file: Path, op_string: str, out_file: Path, operation: str) -> Path:
        maths = fsl.ImageMaths()
        maths.inputs.in_file = str(in_file)
        maths.inputs.op_string = op_string
        maths.inputs.out_file = str(out_file)
        maths.inputs.output_type = self.output_type
        run_interface(maths, self.stage, f"fslmaths {operation}", cwd=Path(out_file).parent)
        return Path(out_file)

    def _stats(self, in_file: Path, op_string: str, operation: str):
        stats = fsl.ImageStats()
        stats.inputs.in_file = str(in_file)
        stats.inputs.op_string = op_string
        result = run_interface(stats, self.stage, f"fslstats {operation}")
        return result.outputs.out_stat

    def threshold(self, in_file, out_file, lower=None, upper=None, binarise=False):
        ops = []
        if lower is not None:
            ops.append(f"-thr {_format_number(lower)}")
        if upper is not None:
            ops.append(f"-uthr {_format_number(upper)}")
        if binarise:
            ops.append('-bin')
        if not ops:
            raise ValueError("threshold needs a lower bound, an upper bound or binarise=True")
        return self._maths(in_file, ' '.join(ops), out_file, 'threshold')

    def erode(self, in_file, out_file, kernel='3D'):
        if kernel not in ('2D', '3D'):
            raise ValueError(f"Unsupported erosion kernel: {kernel}")
        return self._maths(in_file, f"-kernel {kernel} -ero", out_file, f"{kernel} erosion")

    def multiply(self, in_file, other_file, out_file, nan_to_zero=False):
        op_string = f"-mul {other_file}"
        if nan_to_zero:
            op_string += ' -nan'
        return self._maths(in_file, op_string, out_file, 'multiply')

    def nonzero_volume(self, in_file):
        out_stat = self._stats(in_file, '-V', 'volume')
        try:
            n_voxels, volume = out_stat[0], out_stat[1]
        except (IndexError, TypeError) as e:
            raise ExternalToolFailure(
                self.stage, 'fslstats volume', f"unexpected output: {out_stat!r}"
            ) from e
        return VolumeStatistics(n_voxels=int(round(float(n_voxels))), volume_mm3=float(volume))

    def nonzero_mean(self, in_file, label=''):
        if self.nonzero_volume(in_file).n_voxels == 0:
            raise EmptyMaskError(label, image=in_file)
        mean = float(self._stats(in_file, '-M', 'mean'))
        if math.isnan(mean):
            raise EmptyMaskError(label, image=in_file)
        return mean


class FslBrainExtractor(BrainExtractor):
    """Brain extraction with FSL BET, writing <out_base> and <out_base>_mask."""

    name = 'bet'
    required_tools = ('bet',)

    def __init__(self, output_type: str = 'NIFTI_GZ', stage: str = 'spatial alignment'):
        self.output_type = output_type
        self.stage = stage

    def extract(self, in_file: Path, out_base: Path, frac: float = 0.5) -> Tuple[Path, Path]:
        extension = '.nii' if self.output_type == 'NIFTI' else '.nii.gz'
        brain = nifti_path(out_base, extension)

        bet = fsl.BET()
        bet.inputs.in_file = str(in_file)
        bet.inputs.out_file = str(brain)
        bet.inputs.frac = frac
        bet.inputs.mask = True
        bet.inputs.output_type = self.output_type

        logger.info(f"Running BET (frac={frac}) on {Path(in_file).name}")
        result = run_interface(bet, self.stage, 'bet brain extraction', cwd=Path(brain).parent)

        mask: Optional[str] = getattr(result.outputs, 'mask_file', None)
        mask_path = Path(mask) if mask else nifti_path(Path(out_base).with_name(Path(out_base).name + '_mask'),
                                                       extension)
        if not brain.exists() or not mask_path.exists():
            raise ExternalToolFailure(self.stage, 'bet brain extraction', 'expected outputs were not written')
        return brain, mask_path
