#!/usr/bin/env python3
"""
Command-line interface for hippocampal T2 relaxometry.

Usage:
    hippot2 -T1 T1.nii.gz -T2map T2map.nii.gz -seg_L hippo_L.nii.gz -seg_R hippo_R.nii.gz
    hippot2 -T1 T1.nii.gz -T2map T2map.nii.gz -seg_L hippo_L.nii.gz -seg_R hippo_R.nii.gz \
            -out results -T2_thr 160 -vis
"""

import logging
import sys
from pathlib import Path

import click

from hippot2 import __version__
from hippot2.config import PipelineConfig, load_config
from hippot2.exceptions import HippoT2Error, InputNotFoundError, MissingInputError
from hippot2.pipeline import run_hippocampal_t2
from hippot2.preprocess.inputs import resolve_inputs
from hippot2.utils.workflow import setup_logging

logger = logging.getLogger(__name__)

USAGE = """
Please see the following options for proper use:
-T1:     Subject's T1 MPRAGE scan (REQUIRED)
-T2map:  Subject's T2 map (REQUIRED)
-seg_L:  Left hippocampal segmentation - matching the -T1 input (REQUIRED)
-seg_R:  Right hippocampal segmentation - matching the -T1 input (REQUIRED)
-out:    Directory where output will be saved (OPTIONAL - default is PWD)
-tmp:    Temporary directory where calculations will be saved (OPTIONAL - default is within output directory)
-T2_thr: T2 value (in ms) above which voxels are excluded to minimise CSF contamination (OPTIONAL - default is 170)
-vis:    Give this input flag if you want to visualise the final segmentations over the T2 map (OPTIONAL)

e.g., hippot2 -T1 my_T1.nii.gz -T2map my_T2map.nii.gz -seg_L my_left_segmentation.nii.gz -seg_R my_right_segmentation.nii.gz
"""


@click.command(context_settings={'help_option_names': ['-h', '--help']})
@click.option('-T1', 't1', type=click.Path(), help="Subject's T1 scan the segmentations were drawn on")
@click.option('-T2map', 't2map', type=click.Path(), help="Subject's T2 map, in ms")
@click.option('-seg_L', 'seg_left', type=click.Path(), help='Left hippocampal segmentation (T1 space)')
@click.option('-seg_R', 'seg_right', type=click.Path(), help='Right hippocampal segmentation (T1 space)')
@click.option('-out', 'out_dir', type=click.Path(file_okay=False), help='Output directory (default: PWD)')
@click.option('-tmp', 'tmp_dir', type=click.Path(file_okay=False),
              help='Temporary directory (default: <out>/tmp)')
@click.option('-T2_thr', 't2_threshold', type=float,
              help='T2 cut-off in ms to minimise CSF contamination (default: 170)')
@click.option('-vis', 'visualise', is_flag=True, default=False,
              help='Show the final segmentations over the T2 map')
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='YAML configuration merged over the packaged defaults')
@click.option('--verbose', '-v', is_flag=True, default=False, help='Debug logging')
@click.version_option(version=__version__)
def main(t1, t2map, seg_left, seg_right, out_dir, tmp_dir, t2_threshold, visualise, config_path, verbose):
    """Mean hippocampal T2 relaxation time, left and right, from a T1 scan, T2 map and segmentations."""
    setup_logging('DEBUG' if verbose else 'INFO')

    try:
        config = PipelineConfig.from_dict(load_config(Path(config_path) if config_path else None))
    except HippoT2Error as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        inputs = resolve_inputs(
            t1, t2map, seg_left, seg_right,
            out_dir=out_dir,
            tmp_dir=tmp_dir,
            t2_threshold=t2_threshold,
            visualise=visualise,
        )
    except (MissingInputError, InputNotFoundError) as e:
        click.echo(f"\n{e}")
        click.echo(USAGE)
        sys.exit(1)

    try:
        run_hippocampal_t2(inputs, config)
    except HippoT2Error as e:
        logger.error(str(e))
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
