"""
Collaborator interfaces for the external image-processing operations.

Each operation the pipeline delegates (brain extraction, voxel arithmetic,
morphology, statistics, registration) is reached through one of these
interfaces so that backends can be swapped or replaced by fakes in tests.
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from hippot2.exceptions import ExternalToolFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VolumeStatistics:
    """Non-zero voxel count and physical volume of an image."""
    n_voxels: int
    volume_mm3: float


class ImageToolkit(ABC):
    """
    Voxel arithmetic, thresholding, morphology and statistics.

    `thread_safe` marks backends whose operations may run in concurrent
    threads; nipype interfaces change the process working directory while
    they run, so command-line backends are not.
    """

    name = 'abstract'
    required_tools: Tuple[str, ...] = ()
    thread_safe = False

    @abstractmethod
    def threshold(
        self,
        in_file: Path,
        out_file: Path,
        lower: Optional[float] = None,
        upper: Optional[float] = None,
        binarise: bool = False
    ) -> Path:
        """Zero voxels below `lower` / above `upper`, optionally binarise (> 0 -> 1)."""

    @abstractmethod
    def erode(self, in_file: Path, out_file: Path, kernel: str = '3D') -> Path:
        """Erode non-zero voxels with a 3x3x3 ('3D') or in-plane 3x3x1 ('2D') box."""

    @abstractmethod
    def multiply(
        self,
        in_file: Path,
        other_file: Path,
        out_file: Path,
        nan_to_zero: bool = False
    ) -> Path:
        """Voxel-wise product of two images on the same grid."""

    @abstractmethod
    def nonzero_volume(self, in_file: Path) -> VolumeStatistics:
        """Count and volume of non-zero voxels."""

    @abstractmethod
    def nonzero_mean(self, in_file: Path, label: str = '') -> float:
        """
        Mean over non-zero voxels.

        Raises
        ------
        EmptyMaskError
            If the image holds no non-zero voxel
        """


class BrainExtractor(ABC):
    """Tissue extraction producing a brain image and its binary extent mask."""

    name = 'abstract'
    required_tools: Tuple[str, ...] = ()

    @abstractmethod
    def extract(self, in_file: Path, out_base: Path, frac: float = 0.5) -> Tuple[Path, Path]:
        """Return (brain image, brain mask)."""


def nifti_path(base: Path, extension: str = '.nii.gz') -> Path:
    """Append a NIfTI extension to an extension-less base path."""
    base = Path(base)
    return base.with_name(base.name + extension)


def run_interface(interface, stage: str, operation: str, cwd: Optional[Path] = None):
    """
    Run a nipype interface, converting any failure to ExternalToolFailure.

    Parameters
    ----------
    interface : nipype.interfaces.base.BaseInterface
        Configured interface
    stage : str
        Pipeline stage name used in error messages
    operation : str
        Human readable operation name
    cwd : Path, optional
        Working directory for the command

    Returns
    -------
    nipype.interfaces.base.InterfaceResult
    """
    try:
        cmdline = interface.cmdline
    except (AttributeError, ValueError):
        cmdline = type(interface).__name__
    logger.debug(f"Command: {cmdline}")

    try:
        if cwd is not None:
            return interface.run(cwd=str(cwd))
        return interface.run()
    except Exception as e:
        logger.error(f"{operation} failed: {e}")
        raise ExternalToolFailure(stage, operation, str(e)) from e


def run_command(
    cmd: Sequence[str],
    stage: str,
    operation: str,
    cwd: Optional[Path] = None
) -> subprocess.CompletedProcess:
    """
    Run an external command synchronously, raising on non-zero exit.

    Raises
    ------
    ExternalToolFailure
        If the executable is missing or returns a non-zero status
    """
    cmd: List[str] = [str(c) for c in cmd]
    logger.debug(f"Command: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            cwd=str(cwd) if cwd is not None else None
        )
    except OSError as e:
        logger.error(f"{operation} failed: {e}")
        raise ExternalToolFailure(stage, operation, str(e)) from e

    if result.returncode != 0:
        logger.error(f"{operation} failed: {result.stderr}")
        raise ExternalToolFailure(
            stage, operation, f"exit status {result.returncode}: {result.stderr.strip()}"
        )

    return result
