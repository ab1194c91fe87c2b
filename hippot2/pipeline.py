#!/usr/bin/env python3
"""
Hippocampal T2 relaxometry pipeline.

Workflow:
1. Resolve inputs and create a run-specific working directory
2. Register the T1 scan to the T2 map and resample both segmentations
3. Minimise CSF contamination (binarise, in-plane erosion, T2 cut-off)
4. Compute mean T2, sampling coverage and L/R ratios
5. Write the report, export the corrected masks, remove the working files

Reference:
    Vos SB, Winston GP. Automated hippocampal T2 relaxometry.
    ISMRM 2017, Honolulu, p2421.
"""

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional

from joblib import Parallel, delayed

from hippot2.analysis.contamination import CorrectedMask, build_low_t2_mask, correct_contamination
from hippot2.analysis.reporting import (
    ReportRecord,
    echo_report,
    format_report,
    launch_viewer,
    persist_masks,
    viewer_command,
    write_report,
)
from hippot2.analysis.statistics import (
    HemisphereStatistics,
    compute_asymmetry,
    compute_hemisphere_statistics,
)
from hippot2.config import PipelineConfig
from hippot2.preprocess.alignment import HEMISPHERES, align_segmentations
from hippot2.preprocess.inputs import PipelineInputs, prepare_work_dir
from hippot2.tools.base import BrainExtractor, ImageToolkit
from hippot2.tools.fsl import FslBrainExtractor, FslImageToolkit
from hippot2.tools.native import NativeImageToolkit
from hippot2.tools.registration import RegistrationStrategy, make_registration
from hippot2.utils.workflow import check_dependencies, configure_tool_environment

logger = logging.getLogger(__name__)


@dataclass
class Collaborators:
    """The external operations the pipeline delegates to."""
    toolkit: ImageToolkit
    extractor: BrainExtractor
    registration: RegistrationStrategy

    @property
    def required_tools(self):
        return (
            tuple(self.toolkit.required_tools)
            + tuple(self.extractor.required_tools)
            + tuple(self.registration.required_tools)
        )


def build_collaborators(
    config: PipelineConfig,
    toolkit: Optional[ImageToolkit] = None,
    extractor: Optional[BrainExtractor] = None,
    registration: Optional[RegistrationStrategy] = None
) -> Collaborators:
    """Construct the configured backends, keeping any collaborator passed in."""
    if toolkit is None:
        if config.image_backend == 'native':
            toolkit = NativeImageToolkit()
        else:
            toolkit = FslImageToolkit(output_type=config.output_type)
    if extractor is None:
        extractor = FslBrainExtractor(output_type=config.output_type)
    if registration is None:
        registration = make_registration(config)
    return Collaborators(toolkit=toolkit, extractor=extractor, registration=registration)


def _map_hemispheres(func: Callable[[str], object], parallel: bool) -> Dict[str, object]:
    """Apply func to each hemisphere, keeping L/R order."""
    if parallel:
        results = Parallel(n_jobs=len(HEMISPHERES), prefer='threads')(
            delayed(func)(hemisphere) for hemisphere in HEMISPHERES
        )
    else:
        results = [func(hemisphere) for hemisphere in HEMISPHERES]
    return dict(zip(HEMISPHERES, results))


def _remove_work_dir(work_dir: Path, tmp_dir: Path) -> None:
    shutil.rmtree(work_dir)
    # Only remove the temporary directory itself once nothing else lives there
    if tmp_dir.exists() and not any(tmp_dir.iterdir()):
        tmp_dir.rmdir()
    logger.debug(f"Removed temporary files in {tmp_dir}")


def run_hippocampal_t2(
    inputs: PipelineInputs,
    config: Optional[PipelineConfig] = None,
    toolkit: Optional[ImageToolkit] = None,
    extractor: Optional[BrainExtractor] = None,
    registration: Optional[RegistrationStrategy] = None,
    echo: bool = True
) -> ReportRecord:
    """
    Run the full hippocampal T2 pipeline for one subject.

    Parameters
    ----------
    inputs : PipelineInputs
        Output of resolve_inputs
    config : PipelineConfig, optional
        Pipeline configuration (defaults when omitted); inputs.t2_threshold
        overrides config.csf_threshold when set
    toolkit, extractor, registration : optional
        Collaborators replacing the configured backends
    echo : bool
        Print the report to the terminal

    Returns
    -------
    ReportRecord
        Report content, with the persisted mask paths and report path

    Raises
    ------
    ExternalToolFailure
        If a required executable is missing or any external operation fails
    EmptyMaskError
        If a corrected mask is empty and config.fail_on_empty_mask is set
    """
    if config is None:
        config = PipelineConfig()
    config = config.with_overrides(csf_threshold=inputs.t2_threshold)

    configure_tool_environment(config.fsldir, config.niftyreg_dir, config.output_type)
    collaborators = build_collaborators(config, toolkit, extractor, registration)
    check_dependencies(collaborators.required_tools)

    parallel = config.parallel_hemispheres
    if parallel and not collaborators.toolkit.thread_safe:
        logger.warning(
            f"parallel_hemispheres ignored: the {collaborators.toolkit.name} backend is not thread safe"
        )
        parallel = False

    extension = config.image_extension
    work_dir = prepare_work_dir(inputs)
    logger.info(f"Temporary files in {work_dir}")

    try:
        alignment = align_segmentations(
            inputs.t1,
            inputs.t2map,
            inputs.segmentations,
            work_dir,
            extractor=collaborators.extractor,
            registration=collaborators.registration,
            toolkit=collaborators.toolkit,
            bet_frac=config.bet_frac,
            use_brain_mask=config.use_brain_mask,
            extension=extension,
        )

        logger.info("STEP 2 - Minimising CSF contamination...")
        low_t2 = build_low_t2_mask(
            inputs.t2map, work_dir, collaborators.toolkit,
            csf_threshold=config.csf_threshold, extension=extension
        )
        corrected: Dict[str, CorrectedMask] = _map_hemispheres(
            lambda hemisphere: correct_contamination(
                alignment.resampled[hemisphere],
                inputs.t2map,
                low_t2,
                work_dir,
                collaborators.toolkit,
                hemisphere,
                binarise_threshold=config.binarise_threshold,
                extension=extension,
            ),
            parallel,
        )

        logger.info("STEP 3 - Generating statistics...")
        stats: Dict[str, HemisphereStatistics] = _map_hemispheres(
            lambda hemisphere: compute_hemisphere_statistics(
                corrected[hemisphere],
                collaborators.toolkit,
                fail_on_empty_mask=config.fail_on_empty_mask,
            ),
            parallel,
        )
        ratios = compute_asymmetry(stats['L'], stats['R'])

        record = ReportRecord(
            timestamp=datetime.now().astimezone(),
            t1=inputs.t1,
            t2map=inputs.t2map,
            seg_left=inputs.seg_left,
            seg_right=inputs.seg_right,
            registration=collaborators.registration.describe(),
            left=stats['L'],
            right=stats['R'],
            ratios=ratios,
        )
        record.report_path = write_report(record, inputs.out_dir / config.report_name)
        if echo:
            echo_report(format_report(record))

        record.masks = persist_masks(
            {hemisphere: corrected[hemisphere].corrected for hemisphere in HEMISPHERES},
            inputs.t2map,
            inputs.out_dir,
            extension=extension,
        )
    except Exception:
        logger.error(f"Pipeline aborted; intermediate files kept in {work_dir}")
        raise

    if config.cleanup_tmp:
        _remove_work_dir(work_dir, inputs.tmp_dir)

    if inputs.visualise:
        launch_viewer(viewer_command(
            config.viewer,
            inputs.t2map,
            [record.masks['L'], record.masks['R']],
            display_range=config.display_range,
            opacity=config.mask_opacity,
            colour=config.mask_colour,
        ))

    return record
