"""
Configuration loader for the hippocampal T2 pipeline.

Handles:
- Loading YAML configuration files
- Merging user configs with the packaged defaults
- Environment variable substitution
- Conversion to the typed PipelineConfig consumed by the pipeline
"""

import math
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from hippot2.exceptions import HippoT2Error

DEFAULT_CONFIG_PATH = Path(__file__).parent / 'configs' / 'default.yaml'

REGISTRATION_TOOLS = ('niftyreg', 'fsl')
REGISTRATION_STRATEGIES = ('psf-resampling', 'direct-interpolation')
IMAGE_BACKENDS = ('fsl', 'native')
VIEWERS = ('fsleyes', 'fslview')

_PLACEHOLDER = re.compile(r'\$\{([^}]+)\}')


class ConfigurationError(HippoT2Error):
    """Raised when configuration is invalid or missing required parameters."""
    pass


def load_yaml(file_path: Path) -> Dict[str, Any]:
    """
    Load YAML configuration file.

    Parameters
    ----------
    file_path : Path
        Path to YAML file

    Returns
    -------
    dict
        Loaded configuration

    Raises
    ------
    ConfigurationError
        If file doesn't exist or YAML is invalid
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file not found: {file_path}")

    try:
        with open(file_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {file_path}: {e}") from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigurationError(f"Top level of {file_path} must be a mapping")
    return config


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two configuration dictionaries.

    Parameters
    ----------
    base : dict
        Base configuration (defaults)
    override : dict
        Override configuration (user/site specific)

    Returns
    -------
    dict
        Merged configuration (override takes precedence)
    """
    merged = base.copy()

    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def substitute_variables(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Substitute ${ENV_VAR} references with environment values.

    Unknown variables are left in place so that callers can tell an
    unconfigured path from an empty one (see is_unset).
    """
    def replacer(match):
        return os.environ.get(match.group(1), match.group(0))

    def process_value(value: Any) -> Any:
        if isinstance(value, str):
            return _PLACEHOLDER.sub(replacer, value)
        elif isinstance(value, dict):
            return {k: process_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [process_value(item) for item in value]
        return value

    return process_value(config)


def is_unset(value: Any) -> bool:
    """True for empty values and unsubstituted ${...} placeholders."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip() or bool(_PLACEHOLDER.search(value))
    return False


def get_config_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get a value from config using dot notation.

    Examples
    --------
    >>> get_config_value(config, 'contamination.csf_threshold')
    170
    >>> get_config_value(config, 'missing.key', default=0.3)
    0.3
    """
    try:
        value = config
        for part in key_path.split('.'):
            value = value[part]
        return value
    except (KeyError, TypeError):
        return default


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the packaged defaults and merge an optional user config over them.

    Parameters
    ----------
    config_path : Path, optional
        User configuration file

    Returns
    -------
    dict
        Merged configuration with environment variables substituted

    Raises
    ------
    ConfigurationError
        If any file is missing or not valid YAML
    """
    config = load_yaml(DEFAULT_CONFIG_PATH)
    if config_path is not None:
        config = merge_configs(config, load_yaml(Path(config_path)))
    return substitute_variables(config)


def default_strategy(tool: str) -> str:
    """Registration strategy used when only the tool is configured."""
    return 'psf-resampling' if tool == 'niftyreg' else 'direct-interpolation'


@dataclass
class PipelineConfig:
    """Typed view of the configuration consumed by the pipeline."""
    csf_threshold: float = 170.0
    binarise_threshold: float = 0.95
    registration_tool: str = 'niftyreg'
    registration_strategy: str = 'psf-resampling'
    use_brain_mask: bool = True
    flirt_cost: str = 'normmi'
    bet_frac: float = 0.5
    image_backend: str = 'fsl'
    fsldir: Optional[str] = None
    niftyreg_dir: Optional[str] = None
    output_type: str = 'NIFTI_GZ'
    viewer: str = 'fsleyes'
    display_range: List[float] = field(default_factory=lambda: [0.0, 300.0])
    mask_opacity: float = 0.5
    mask_colour: str = 'red'
    cleanup_tmp: bool = True
    fail_on_empty_mask: bool = False
    parallel_hemispheres: bool = False
    report_name: str = 'Hippocampal_T2.txt'

    @property
    def use_psf(self) -> bool:
        return self.registration_strategy == 'psf-resampling'

    @property
    def image_extension(self) -> str:
        return '.nii' if self.output_type == 'NIFTI' else '.nii.gz'

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'PipelineConfig':
        """Build a PipelineConfig from a (merged) configuration dictionary."""
        defaults = cls()

        def value(key_path, default):
            found = get_config_value(config, key_path, default)
            return default if found is None else found

        tool = str(value('registration.tool', defaults.registration_tool)).lower()
        strategy = get_config_value(config, 'registration.strategy')
        if is_unset(strategy):
            strategy = default_strategy(tool)

        fsldir = get_config_value(config, 'fsl.fsldir')
        niftyreg_dir = get_config_value(config, 'niftyreg.path')

        try:
            pipeline_config = cls(
                csf_threshold=float(value('contamination.csf_threshold', defaults.csf_threshold)),
                binarise_threshold=float(value('contamination.binarise_threshold',
                                               defaults.binarise_threshold)),
                registration_tool=tool,
                registration_strategy=str(strategy).lower(),
                use_brain_mask=bool(value('registration.use_brain_mask', defaults.use_brain_mask)),
                flirt_cost=str(value('registration.flirt_cost', defaults.flirt_cost)),
                bet_frac=float(value('skull_strip.frac', defaults.bet_frac)),
                image_backend=str(value('execution.image_backend', defaults.image_backend)).lower(),
                fsldir=None if is_unset(fsldir) else str(fsldir),
                niftyreg_dir=None if is_unset(niftyreg_dir) else str(niftyreg_dir),
                output_type=str(value('fsl.output_type', defaults.output_type)),
                viewer=str(value('visualisation.viewer', defaults.viewer)).lower(),
                display_range=[float(v) for v in value('visualisation.display_range',
                                                       defaults.display_range)],
                mask_opacity=float(value('visualisation.mask_opacity', defaults.mask_opacity)),
                mask_colour=str(value('visualisation.mask_colour', defaults.mask_colour)),
                cleanup_tmp=bool(value('execution.cleanup_tmp', defaults.cleanup_tmp)),
                fail_on_empty_mask=bool(value('statistics.fail_on_empty_mask',
                                              defaults.fail_on_empty_mask)),
                parallel_hemispheres=bool(value('execution.parallel_hemispheres',
                                                defaults.parallel_hemispheres)),
                report_name=str(value('output.report_name', defaults.report_name)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

        validate_config(pipeline_config)
        return pipeline_config

    def with_overrides(self, **overrides: Any) -> 'PipelineConfig':
        """Return a copy with the non-None overrides applied and validated."""
        updated = replace(self, **{k: v for k, v in overrides.items() if v is not None})
        validate_config(updated)
        return updated


def validate_config(config: PipelineConfig) -> None:
    """
    Validate a PipelineConfig.

    Raises
    ------
    ConfigurationError
        If any value is out of range or an unknown choice
    """
    if config.registration_tool not in REGISTRATION_TOOLS:
        raise ConfigurationError(
            f"registration.tool must be one of {REGISTRATION_TOOLS}, got '{config.registration_tool}'"
        )
    if config.registration_strategy not in REGISTRATION_STRATEGIES:
        raise ConfigurationError(
            f"registration.strategy must be one of {REGISTRATION_STRATEGIES}, "
            f"got '{config.registration_strategy}'"
        )
    if config.use_psf and config.registration_tool != 'niftyreg':
        raise ConfigurationError("psf-resampling is only available with the niftyreg registration tool")
    if config.image_backend not in IMAGE_BACKENDS:
        raise ConfigurationError(
            f"execution.image_backend must be one of {IMAGE_BACKENDS}, got '{config.image_backend}'"
        )
    if config.viewer not in VIEWERS:
        raise ConfigurationError(f"visualisation.viewer must be one of {VIEWERS}, got '{config.viewer}'")
    if config.output_type not in ('NIFTI', 'NIFTI_GZ'):
        raise ConfigurationError(f"fsl.output_type must be NIFTI or NIFTI_GZ, got '{config.output_type}'")
    if not 0 < config.binarise_threshold <= 1:
        raise ConfigurationError(
            f"contamination.binarise_threshold must be in (0, 1], got {config.binarise_threshold}"
        )
    if not math.isfinite(config.csf_threshold):
        raise ConfigurationError(
            f"contamination.csf_threshold must be a finite number, got {config.csf_threshold}"
        )
    if not 0 < config.bet_frac < 1:
        raise ConfigurationError(f"skull_strip.frac must be in (0, 1), got {config.bet_frac}")
    if len(config.display_range) != 2:
        raise ConfigurationError("visualisation.display_range must hold two values")
