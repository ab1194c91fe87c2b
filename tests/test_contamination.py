import numpy as np

from hippot2.analysis.contamination import build_low_t2_mask, correct_contamination

from conftest import SHAPE, load_data, make_nifti


def _is_subset(inner, outer):
    return not np.any((inner != 0) & (outer == 0))


def test_low_t2_mask_excludes_csf(subject, tmp_path, toolkit):
    low = load_data(build_low_t2_mask(subject['t2map'], tmp_path, toolkit, csf_threshold=170))
    assert low[8, 3, 1] == 0
    assert low[2, 2, 0] == 1
    assert set(np.unique(low)) <= {0.0, 1.0}


def test_correction_narrows_monotonically(tmp_path, toolkit):
    rng = np.random.default_rng(42)
    interpolated = np.clip(rng.normal(0.9, 0.2, SHAPE), 0, 1)
    interpolated[:, :, 0] = 0
    t2 = rng.uniform(60, 260, SHAPE)
    resampled = make_nifti(tmp_path / 'hippo_l_T2.nii.gz', interpolated)
    t2map = make_nifti(tmp_path / 'T2map.nii.gz', t2)
    low = build_low_t2_mask(t2map, tmp_path, toolkit, csf_threshold=170)

    result = correct_contamination(resampled, t2map, low, tmp_path, toolkit, 'L')

    binarised = load_data(result.binarised)
    eroded = load_data(result.eroded)
    corrected = load_data(result.corrected)
    assert set(np.unique(binarised)) <= {0.0, 1.0}
    assert _is_subset(eroded, binarised)
    assert _is_subset(corrected, eroded)
    assert np.all(load_data(t2map)[corrected != 0] <= 170)


def test_corrected_mask_and_masked_t2(subject, tmp_path, toolkit):
    low = build_low_t2_mask(subject['t2map'], tmp_path, toolkit)
    result = correct_contamination(subject['seg_right'], subject['t2map'], low, tmp_path, toolkit, 'R')

    corrected = load_data(result.corrected)
    masked = load_data(result.masked_t2)
    assert result.hemisphere == 'R'
    assert result.corrected.name == 'hippo_r_T2_corrected.nii.gz'
    # 3x3 in-plane core on 4 slices, minus the CSF voxel
    assert corrected.sum() == 35
    assert corrected[8, 3, 1] == 0
    np.testing.assert_allclose(np.unique(masked[masked != 0]), [110.0])


def test_threshold_below_all_values_empties_mask(subject, tmp_path, toolkit):
    low = build_low_t2_mask(subject['t2map'], tmp_path, toolkit, csf_threshold=50)
    result = correct_contamination(subject['seg_left'], subject['t2map'], low, tmp_path, toolkit, 'L')
    assert load_data(result.corrected).sum() == 0
    assert load_data(result.eroded).sum() == 36
