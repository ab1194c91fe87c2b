"""
In-process image collaborator using nibabel, numpy and scipy.

Mirrors the fslmaths/fslstats operations the pipeline needs:

- threshold: ``-thr`` zeroes values below, ``-uthr`` zeroes values above,
  ``-bin`` sets values > 0 to 1
- erode: ``-kernel 3D|2D -ero`` with a 3x3x3 / 3x3x1 box, voxels outside
  the field of view do not erode the border
- multiply: ``-mul`` with optional ``-nan`` (NaN -> 0)
- statistics: ``-V`` and ``-M`` over non-zero voxels
"""

import logging
from pathlib import Path

import nibabel as nib
import numpy as np
from scipy import ndimage

from hippot2.exceptions import EmptyMaskError
from hippot2.tools.base import ImageToolkit, VolumeStatistics

logger = logging.getLogger(__name__)

KERNELS = {
    '3D': np.ones((3, 3, 3), dtype=bool),
    '2D': np.ones((3, 3, 1), dtype=bool),
}


def load_volume(in_file: Path):
    """Load an image and return (image, float data)."""
    img = nib.load(str(in_file))
    return img, np.asarray(img.get_fdata(dtype=np.float32))


def save_like(data: np.ndarray, reference, out_file: Path) -> Path:
    """Save float32 data using the geometry of a reference image."""
    out_file = Path(out_file)
    out_file.parent.mkdir(parents=True, exist_ok=True)
    header = reference.header.copy()
    header.set_data_dtype(np.float32)
    out = nib.Nifti1Image(data.astype(np.float32), reference.affine, header)
    nib.save(out, str(out_file))
    return out_file


def voxel_volume(img) -> float:
    """Physical volume of one voxel in mm^3."""
    zooms = img.header.get_zooms()[:3]
    return float(np.prod(zooms))


class NativeImageToolkit(ImageToolkit):
    """ImageToolkit computed in-process on NIfTI volumes."""

    name = 'native'
    required_tools = ()
    thread_safe = True

    def threshold(self, in_file, out_file, lower=None, upper=None, binarise=False):
        if lower is None and upper is None and not binarise:
            raise ValueError("threshold needs a lower bound, an upper bound or binarise=True")

        img, data = load_volume(in_file)
        result = data.copy()
        if lower is not None:
            result[result < np.float32(lower)] = 0
        if upper is not None:
            result[result > np.float32(upper)] = 0
        if binarise:
            result = (result > 0).astype(np.float32)
        return save_like(result, img, out_file)

    def erode(self, in_file, out_file, kernel='3D'):
        if kernel not in KERNELS:
            raise ValueError(f"Unsupported erosion kernel: {kernel}")

        img, data = load_volume(in_file)
        if data.ndim != 3:
            raise ValueError(f"Erosion expects a 3D volume, got shape {data.shape}")

        nonzero = data != 0
        keep = ndimage.binary_erosion(nonzero, structure=KERNELS[kernel], border_value=1)
        return save_like(np.where(keep, data, 0), img, out_file)

    def multiply(self, in_file, other_file, out_file, nan_to_zero=False):
        img, data = load_volume(in_file)
        _, other = load_volume(other_file)
        if data.shape != other.shape:
            raise ValueError(
                f"Cannot multiply images of different shapes: {data.shape} vs {other.shape}"
            )

        with np.errstate(invalid='ignore'):
            product = data * other
        if nan_to_zero:
            product = np.where(np.isnan(product), 0, product)
        return save_like(product, img, out_file)

    def nonzero_volume(self, in_file):
        img, data = load_volume(in_file)
        n_voxels = int(np.count_nonzero(np.nan_to_num(data, nan=0.0)))
        return VolumeStatistics(n_voxels=n_voxels, volume_mm3=n_voxels * voxel_volume(img))

    def nonzero_mean(self, in_file, label=''):
        _, data = load_volume(in_file)
        values = data[(data != 0) & ~np.isnan(data)]
        if values.size == 0:
            raise EmptyMaskError(label, image=in_file)
        return float(np.mean(values, dtype=np.float64))
