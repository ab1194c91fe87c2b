from pathlib import Path

import pytest

from hippot2.exceptions import InputNotFoundError, MissingInputError
from hippot2.preprocess.inputs import prepare_work_dir, resolve_inputs


def test_missing_required_input_lists_flag(subject):
    with pytest.raises(MissingInputError) as err:
        resolve_inputs(subject['t1'], subject['t2map'], subject['seg_left'], None)
    assert err.value.missing == ['-seg_R']


def test_all_missing_inputs_reported(subject):
    with pytest.raises(MissingInputError) as err:
        resolve_inputs(None, None, subject['seg_left'], '')
    assert err.value.missing == ['-T1', '-T2map', '-seg_R']


def test_nonexistent_input_raises_file_not_found(subject, tmp_path):
    missing = tmp_path / 'nope.nii.gz'
    with pytest.raises(FileNotFoundError) as err:
        resolve_inputs(subject['t1'], missing, subject['seg_left'], subject['seg_right'])
    assert isinstance(err.value, InputNotFoundError)
    assert str(missing) in str(err.value)


def test_directory_is_not_an_input_file(subject, tmp_path):
    with pytest.raises(InputNotFoundError):
        resolve_inputs(subject['t1'], tmp_path, subject['seg_left'], subject['seg_right'])


def test_relative_paths_resolved_against_cwd(subject, tmp_path):
    data_dir = subject['t1'].parent
    inputs = resolve_inputs(
        'T1.nii.gz', 'T2map.nii.gz', 'hippo_L.nii.gz', 'hippo_R.nii.gz',
        out_dir='results', cwd=data_dir,
    )
    assert inputs.t1 == data_dir / 'T1.nii.gz'
    assert inputs.seg_right == data_dir / 'hippo_R.nii.gz'
    assert inputs.out_dir == data_dir / 'results'
    assert all(p.is_absolute() for p in (inputs.t1, inputs.t2map, inputs.seg_left, inputs.seg_right))


def test_defaults(subject, monkeypatch):
    cwd = subject['t1'].parent
    monkeypatch.chdir(cwd)
    inputs = resolve_inputs(subject['t1'], subject['t2map'], subject['seg_left'], subject['seg_right'])
    assert inputs.out_dir == cwd
    assert inputs.tmp_dir == cwd / 'tmp'
    assert inputs.t2_threshold is None
    assert inputs.visualise is False


def test_explicit_tmp_and_threshold(subject, tmp_path):
    inputs = resolve_inputs(
        subject['t1'], subject['t2map'], subject['seg_left'], subject['seg_right'],
        out_dir=tmp_path / 'out', tmp_dir='scratch', t2_threshold=150, visualise=True, cwd=tmp_path,
    )
    assert inputs.tmp_dir == tmp_path / 'scratch'
    assert inputs.t2_threshold == 150.0
    assert inputs.visualise is True


def test_validation_does_not_create_directories(subject, tmp_path):
    out = tmp_path / 'out'
    resolve_inputs(subject['t1'], subject['t2map'], subject['seg_left'], subject['seg_right'], out_dir=out)
    assert not out.exists()


def test_prepare_work_dir_accepts_existing_tmp(subject, tmp_path):
    tmp_dir = tmp_path / 'out' / 'tmp'
    tmp_dir.mkdir(parents=True)
    inputs = resolve_inputs(
        subject['t1'], subject['t2map'], subject['seg_left'], subject['seg_right'],
        out_dir=tmp_path / 'out',
    )
    first = prepare_work_dir(inputs)
    second = prepare_work_dir(inputs)
    assert first.parent == tmp_dir
    assert second.parent == tmp_dir
    assert first != second
    assert Path(first).is_dir()
