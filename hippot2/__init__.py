"""
hippot2: Automated hippocampal T2 relaxometry

Computes mean T2 relaxation time in the left and right hippocampus from a
T1 scan, a quantitative T2 map and hippocampal segmentations drawn on the
T1 scan.

Modules
-------
preprocess : Input resolution and T1 -> T2-map alignment (BET, FLIRT / NiftyReg)
analysis : CSF contamination correction, statistics and reporting
tools : Collaborators wrapping FSL, NiftyReg and in-process image arithmetic

Usage
-----
>>> from hippot2 import load_config, PipelineConfig
>>> from hippot2.preprocess.inputs import resolve_inputs
>>> from hippot2.pipeline import run_hippocampal_t2
>>> inputs = resolve_inputs('T1.nii.gz', 'T2map.nii.gz', 'hippo_L.nii.gz', 'hippo_R.nii.gz')
>>> record = run_hippocampal_t2(inputs, PipelineConfig.from_dict(load_config()))
"""

__version__ = "1.0.0"
__all__ = ['analysis', 'preprocess', 'tools', 'config', 'utils']

from hippot2.config import PipelineConfig, load_config

__all__ += ['PipelineConfig', 'load_config']
