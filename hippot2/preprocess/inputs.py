"""
Input resolution: presence checks, absolute paths and working directories.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from hippot2.exceptions import MissingInputError
from hippot2.utils.workflow import validate_inputs

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Command line flag for each required input, in usage order
REQUIRED_FLAGS = {
    't1': '-T1',
    't2map': '-T2map',
    'seg_left': '-seg_L',
    'seg_right': '-seg_R',
}


@dataclass(frozen=True)
class PipelineInputs:
    """Resolved inputs of one run; every path is absolute."""
    t1: Path
    t2map: Path
    seg_left: Path
    seg_right: Path
    out_dir: Path
    tmp_dir: Path
    t2_threshold: Optional[float] = None
    visualise: bool = False

    @property
    def segmentations(self):
        return {'L': self.seg_left, 'R': self.seg_right}


def _absolute(path: PathLike, cwd: Path) -> Path:
    path = Path(path).expanduser()
    if not path.is_absolute():
        path = cwd / path
    return Path(os.path.normpath(path))


def resolve_inputs(
    t1: Optional[PathLike],
    t2map: Optional[PathLike],
    seg_left: Optional[PathLike],
    seg_right: Optional[PathLike],
    out_dir: Optional[PathLike] = None,
    tmp_dir: Optional[PathLike] = None,
    t2_threshold: Optional[float] = None,
    visualise: bool = False,
    cwd: Optional[PathLike] = None
) -> PipelineInputs:
    """
    Validate the required inputs and normalise every path.

    Parameters
    ----------
    t1, t2map, seg_left, seg_right : path-like
        Anatomical image, T2 map and hippocampal segmentations (required)
    out_dir : path-like, optional
        Output directory (default: working directory)
    tmp_dir : path-like, optional
        Temporary directory (default: <out_dir>/tmp)
    t2_threshold : float, optional
        Upper T2 limit in ms for CSF exclusion; None keeps the configured
        contamination.csf_threshold
    visualise : bool
        Launch a viewer once the run completes
    cwd : path-like, optional
        Directory relative paths are resolved against (default: os.getcwd())

    Returns
    -------
    PipelineInputs

    Raises
    ------
    MissingInputError
        If a required input is not given
    InputNotFoundError
        If a required input is not an existing file
    """
    given = {'t1': t1, 't2map': t2map, 'seg_left': seg_left, 'seg_right': seg_right}
    missing = [REQUIRED_FLAGS[key] for key, value in given.items() if value is None or str(value) == '']
    if missing:
        raise MissingInputError(missing)

    cwd = _absolute(cwd, Path.cwd()) if cwd is not None else Path.cwd()
    resolved = {key: _absolute(value, cwd) for key, value in given.items()}
    validate_inputs(*resolved.values())

    out_dir = _absolute(out_dir, cwd) if out_dir is not None else cwd
    tmp_dir = _absolute(tmp_dir, cwd) if tmp_dir is not None else out_dir / 'tmp'

    return PipelineInputs(
        t1=resolved['t1'],
        t2map=resolved['t2map'],
        seg_left=resolved['seg_left'],
        seg_right=resolved['seg_right'],
        out_dir=out_dir,
        tmp_dir=tmp_dir,
        t2_threshold=None if t2_threshold is None else float(t2_threshold),
        visualise=visualise,
    )


def prepare_work_dir(inputs: PipelineInputs) -> Path:
    """
    Create the temporary directory and a unique working directory inside it.

    The temporary directory may already exist; each run still gets its own
    subdirectory so concurrent runs sharing -tmp do not overwrite each other.

    Returns
    -------
    Path
        Run-specific working directory
    """
    inputs.out_dir.mkdir(parents=True, exist_ok=True)
    inputs.tmp_dir.mkdir(parents=True, exist_ok=True)
    work_dir = Path(tempfile.mkdtemp(prefix='hippot2_', dir=str(inputs.tmp_dir)))
    logger.debug(f"Working directory: {work_dir}")
    return work_dir
