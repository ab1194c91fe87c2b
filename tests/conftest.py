from pathlib import Path

import nibabel as nib
import numpy as np
import pytest

from hippot2.tools.base import BrainExtractor, nifti_path
from hippot2.tools.native import NativeImageToolkit
from hippot2.tools.registration import RegistrationStrategy

SHAPE = (12, 8, 4)
ZOOMS = (1.0, 1.0, 3.0)


def make_nifti(path: Path, data, zooms=ZOOMS) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    affine = np.diag(list(zooms) + [1.0])
    img = nib.Nifti1Image(np.asarray(data, dtype=np.float32), affine)
    img.header.set_zooms(zooms)
    nib.save(img, str(path))
    return path


def load_data(path: Path) -> np.ndarray:
    return np.asarray(nib.load(str(path)).get_fdata())


class FakeBrainExtractor(BrainExtractor):
    """Treats every non-zero T1 voxel as brain."""

    name = 'fake-bet'

    def __init__(self):
        self.calls = []

    def extract(self, in_file, out_base, frac=0.5):
        self.calls.append((Path(in_file), frac))
        img = nib.load(str(in_file))
        data = np.asarray(img.get_fdata())
        brain = nifti_path(out_base)
        mask = nifti_path(Path(f"{out_base}_mask"))
        nib.save(nib.Nifti1Image(data.astype(np.float32), img.affine), str(brain))
        nib.save(nib.Nifti1Image((data > 0).astype(np.float32), img.affine), str(mask))
        return brain, mask


class IdentityRegistration(RegistrationStrategy):
    """Segmentations already share the T2 map grid; resampling copies data."""

    name = 'identity'

    def __init__(self):
        self.registered = []
        self.resampled = []

    def register(self, moving, reference, transform_file, moving_mask=None):
        self.registered.append((Path(moving), Path(reference), moving_mask))
        np.savetxt(str(transform_file), np.eye(4))
        return Path(transform_file)

    def resample(self, moving, reference, transform_file, out_file):
        self.resampled.append(Path(moving))
        ref = nib.load(str(reference))
        data = np.asarray(nib.load(str(moving)).get_fdata(), dtype=np.float32)
        nib.save(nib.Nifti1Image(data, ref.affine, ref.header), str(out_file))
        return Path(out_file)

    def describe(self):
        return "Registration performed using identity transform (test)"


def block(x, y, z=slice(None)):
    data = np.zeros(SHAPE, dtype=np.float32)
    data[x, y, z] = 1.0
    return data


@pytest.fixture
def subject(tmp_path):
    """
    Synthetic subject on a 1x1x3 mm grid.

    Left hippocampus: 5x5x4 block with T2 = 100 ms.
    Right hippocampus: 5x5x4 block with T2 = 110 ms and one CSF voxel
    (250 ms) inside its eroded core.
    """
    data_dir = tmp_path / 'data'
    t2 = np.full(SHAPE, 80.0, dtype=np.float32)
    t2[1:6, 1:6, :] = 100.0
    t2[6:11, 1:6, :] = 110.0
    t2[8, 3, 1] = 250.0

    t1 = np.full(SHAPE, 500.0, dtype=np.float32)

    paths = {
        't1': make_nifti(data_dir / 'T1.nii.gz', t1),
        't2map': make_nifti(data_dir / 'T2map.nii.gz', t2),
        'seg_left': make_nifti(data_dir / 'hippo_L.nii.gz', block(slice(1, 6), slice(1, 6))),
        'seg_right': make_nifti(data_dir / 'hippo_R.nii.gz', block(slice(6, 11), slice(1, 6))),
    }
    return paths


@pytest.fixture
def toolkit():
    return NativeImageToolkit()


@pytest.fixture
def fakes():
    return {'extractor': FakeBrainExtractor(), 'registration': IdentityRegistration()}
