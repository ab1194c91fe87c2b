from types import SimpleNamespace

import numpy as np
import pytest

from hippot2.exceptions import EmptyMaskError, ExternalToolFailure
from hippot2.tools import base, fsl
from hippot2.tools.fsl import FslImageToolkit

from conftest import SHAPE, make_nifti


@pytest.fixture
def image(tmp_path):
    return make_nifti(tmp_path / 'img.nii.gz', np.ones(SHAPE))


@pytest.fixture
def calls(monkeypatch):
    recorded = []
    stats = {'-V': [12.0, 36.0], '-M': 104.25}

    def fake_run_interface(interface, stage, operation, cwd=None):
        recorded.append(interface)
        out_stat = stats.get(interface.inputs.op_string)
        return SimpleNamespace(outputs=SimpleNamespace(out_stat=out_stat))

    monkeypatch.setattr(fsl, 'run_interface', fake_run_interface)
    return recorded, stats


def test_fslmaths_operation_strings(calls, image, tmp_path):
    recorded, _ = calls
    toolkit = FslImageToolkit()
    toolkit.threshold(image, tmp_path / 'bin.nii.gz', lower=0.95, binarise=True)
    toolkit.threshold(image, tmp_path / 'low.nii.gz', upper=170, binarise=True)
    toolkit.erode(image, tmp_path / 'ero.nii.gz', kernel='2D')
    toolkit.multiply(image, image, tmp_path / 'mul.nii.gz', nan_to_zero=True)

    assert [i.inputs.op_string for i in recorded] == [
        '-thr 0.95 -bin',
        '-uthr 170 -bin',
        '-kernel 2D -ero',
        f'-mul {image} -nan',
    ]
    assert recorded[0].inputs.out_file == str(tmp_path / 'bin.nii.gz')


def test_fslstats_volume_and_mean(calls, image):
    toolkit = FslImageToolkit()
    volume = toolkit.nonzero_volume(image)
    assert volume.n_voxels == 12
    assert volume.volume_mm3 == 36.0
    assert toolkit.nonzero_mean(image) == 104.25


def test_fslstats_empty_mask(calls, image):
    _, stats = calls
    stats['-V'] = [0.0, 0.0]
    with pytest.raises(EmptyMaskError):
        FslImageToolkit().nonzero_mean(image, label='R')


def test_interface_failure_is_wrapped():
    class Broken:
        cmdline = 'fslmaths broken'

        def run(self, **kwargs):
            raise RuntimeError('Command exited with return code 1')

    with pytest.raises(ExternalToolFailure) as err:
        base.run_interface(Broken(), 'contamination correction', 'fslmaths threshold')
    assert err.value.stage == 'contamination correction'
    assert 'fslmaths threshold' in str(err.value)
    assert isinstance(err.value.__cause__, RuntimeError)


def test_run_command_missing_executable():
    with pytest.raises(ExternalToolFailure):
        base.run_command(['hippot2-no-such-tool'], 'setup', 'version query')
