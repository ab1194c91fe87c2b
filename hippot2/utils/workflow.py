#!/usr/bin/env python3
"""
Workflow helper utilities.

Provides logging setup, toolkit environment configuration and
dependency/input checks shared by the pipeline stages.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from hippot2.exceptions import ExternalToolFailure, InputNotFoundError

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Set up logging for the pipeline.

    Parameters
    ----------
    level : str
        Logging level (DEBUG, INFO, WARNING, ERROR)
    log_file : Path, optional
        Also write log records to this file

    Returns
    -------
    logging.Logger
        The configured package logger

    Examples
    --------
    >>> logger = setup_logging('DEBUG')
    >>> logger.info("Starting hippocampal T2")
    """
    logger = logging.getLogger('hippot2')

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(numeric_level)

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def set_fsl_output_type(output_type: str = 'NIFTI_GZ'):
    """
    Set FSL output type environment variable.

    Parameters
    ----------
    output_type : str
        FSL output type (NIFTI, NIFTI_GZ)
    """
    os.environ['FSLOUTPUTTYPE'] = output_type


def configure_tool_environment(
    fsldir: Optional[str] = None,
    niftyreg_dir: Optional[str] = None,
    output_type: str = 'NIFTI_GZ'
) -> None:
    """
    Export the toolkit locations the external interfaces rely on.

    FSL binaries are looked up on PATH and nipype's NiftyReg interfaces
    prefix their commands with $NIFTYREGDIR.
    """
    logger = logging.getLogger(__name__)

    if fsldir:
        os.environ['FSLDIR'] = fsldir
        fsl_bin = str(Path(fsldir) / 'bin')
        path_entries = os.environ.get('PATH', '').split(os.pathsep)
        if fsl_bin not in path_entries:
            os.environ['PATH'] = os.pathsep.join([fsl_bin] + [p for p in path_entries if p])
        logger.debug(f"FSLDIR set to {fsldir}")

    if niftyreg_dir:
        os.environ['NIFTYREGDIR'] = niftyreg_dir
        logger.debug(f"NIFTYREGDIR set to {niftyreg_dir}")

    set_fsl_output_type(output_type)


def find_executable(tool: str) -> Optional[str]:
    """Locate an executable on PATH, or under $NIFTYREGDIR for NiftyReg tools."""
    if tool.startswith('reg_') and os.environ.get('NIFTYREGDIR'):
        candidate = Path(os.environ['NIFTYREGDIR']) / tool
        if candidate.exists():
            return str(candidate)
    return shutil.which(tool)


def check_dependencies(tools: Iterable[str]) -> None:
    """
    Check that the required external executables are available.

    Parameters
    ----------
    tools : iterable of str
        Executable names (e.g. 'bet', 'fslmaths', 'reg_aladin')

    Raises
    ------
    ExternalToolFailure
        If any executable cannot be found
    """
    missing: List[str] = [tool for tool in dict.fromkeys(tools) if find_executable(tool) is None]
    if missing:
        raise ExternalToolFailure(
            'setup',
            'dependency check',
            f"executables not found: {', '.join(missing)}; check the FSL/NiftyReg installation paths",
        )


def validate_inputs(*file_paths: Path) -> bool:
    """
    Validate that input files exist.

    Parameters
    ----------
    *file_paths : Path
        Paths to check

    Returns
    -------
    bool
        True if all files exist

    Raises
    ------
    InputNotFoundError
        If any file doesn't exist (lists every missing file)
    """
    missing = [Path(p) for p in file_paths if not Path(p).is_file()]
    if missing:
        raise InputNotFoundError(missing)

    return True
