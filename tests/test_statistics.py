import numpy as np
import pytest

from hippot2.analysis.contamination import CorrectedMask
from hippot2.analysis.statistics import (
    HemisphereStatistics,
    compute_asymmetry,
    compute_hemisphere_statistics,
    coverage_percentage,
    round_one_decimal,
)
from hippot2.exceptions import EmptyMaskError
from hippot2.tools.base import VolumeStatistics

from conftest import SHAPE, make_nifti


def _stats(hemisphere, mean, sampled=(10, 30.0), total=(20, 60.0)):
    return HemisphereStatistics(
        hemisphere=hemisphere,
        mean_t2=mean,
        sampled=VolumeStatistics(*sampled),
        segmentation=VolumeStatistics(*total),
    )


def _corrected(tmp_path, segmentation, masked_t2, hemisphere='L'):
    seg = make_nifti(tmp_path / f'{hemisphere}_bin.nii.gz', segmentation)
    masked = make_nifti(tmp_path / f'{hemisphere}_masked.nii.gz', masked_t2)
    return CorrectedMask(hemisphere=hemisphere, binarised=seg, eroded=seg, corrected=seg, masked_t2=masked)


def test_forty_voxel_scenario(tmp_path, toolkit):
    segmentation = np.zeros(SHAPE)
    segmentation.reshape(-1)[:160] = 1
    masked = np.zeros(SHAPE)
    masked.reshape(-1)[:40] = 100.0

    stats = compute_hemisphere_statistics(_corrected(tmp_path, segmentation, masked), toolkit)

    assert stats.segmentation.volume_mm3 == pytest.approx(480.0)
    assert stats.sampled.volume_mm3 == pytest.approx(120.0)
    assert stats.sampled.n_voxels == 40
    assert stats.mean_t2_rounded == 100.0
    assert stats.coverage == 25.0


def test_empty_mask_reports_no_samples(tmp_path, toolkit):
    segmentation = np.ones(SHAPE)
    stats = compute_hemisphere_statistics(
        _corrected(tmp_path, segmentation, np.zeros(SHAPE), 'R'), toolkit
    )
    assert not stats.has_samples
    assert stats.mean_t2 is None
    assert stats.mean_t2_rounded is None
    assert stats.coverage is None


def test_empty_mask_is_fatal_when_configured(tmp_path, toolkit):
    corrected = _corrected(tmp_path, np.ones(SHAPE), np.zeros(SHAPE), 'R')
    with pytest.raises(EmptyMaskError):
        compute_hemisphere_statistics(corrected, toolkit, fail_on_empty_mask=True)


@pytest.mark.parametrize('sampled, total, expected', [
    (120.0, 480.0, 25.0),
    (480.0, 480.0, 100.0),
    (1.0, 3.0, 33.3),
    (0.0, 480.0, None),
    (10.0, 0.0, None),
])
def test_coverage_percentage(sampled, total, expected):
    assert coverage_percentage(sampled, total) == expected


def test_round_one_decimal():
    assert round_one_decimal(110.57) == 110.6
    assert round_one_decimal(None) is None


def test_ratios_use_unrounded_means():
    left, right = _stats('L', 100.04), _stats('R', 100.46)
    ratios = compute_asymmetry(left, right)

    assert ratios.left_to_right == round(100 * 100.04 / 100.46, 1) == 99.6
    # Rounding the means first (100.0 / 100.5) would give 99.5
    assert round(100 * left.mean_t2_rounded / right.mean_t2_rounded, 1) == 99.5
    assert ratios.right_to_left == 100.4


def test_ratios_are_reciprocal():
    ratios = compute_asymmetry(_stats('L', 112.7), _stats('R', 118.3))
    assert ratios.left_to_right * ratios.right_to_left / 100 == pytest.approx(100, abs=0.2)


def test_ratios_undefined_without_samples():
    ratios = compute_asymmetry(_stats('L', None), _stats('R', 110.0))
    assert ratios.left_to_right is None
    assert ratios.right_to_left is None
