#!/usr/bin/env python3
"""
Hippocampal T2 text report, QA mask export and viewer launch.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from hippot2.analysis.statistics import AsymmetryRatios, HemisphereStatistics

logger = logging.getLogger(__name__)

NO_SAMPLES = 'no samples'
SEPARATOR = '=' * 90
TIMESTAMP_FORMAT = '%a %b %d %H:%M:%S %Z %Y'


@dataclass
class ReportRecord:
    """Everything written to the hippocampal T2 report."""
    timestamp: datetime
    t1: Path
    t2map: Path
    seg_left: Path
    seg_right: Path
    registration: str
    left: HemisphereStatistics
    right: HemisphereStatistics
    ratios: AsymmetryRatios
    masks: Dict[str, Path] = field(default_factory=dict)
    report_path: Optional[Path] = None


def _hemisphere_line(name: str, stats: HemisphereStatistics) -> str:
    if not stats.has_samples:
        return f"{name} hippocampal T2\t{NO_SAMPLES}"
    coverage = stats.coverage
    sampling = f"{coverage:.1f}%" if coverage is not None else NO_SAMPLES
    return f"{name} hippocampal T2\t{stats.mean_t2_rounded:.1f} ms (sampling {sampling} of hippocampal volume)"


def _ratio_line(name: str, ratio: Optional[float]) -> str:
    if ratio is None:
        return f"{name} T2 ratio\t\t{NO_SAMPLES}"
    return f"{name} T2 ratio\t\t{ratio:.1f} percent"


def format_report(record: ReportRecord) -> str:
    """Render the fixed-format report text."""
    timestamp = record.timestamp.strftime(TIMESTAMP_FORMAT).replace('  ', ' ')
    lines = [
        f"Files used for hippocampal T2 calculation [{timestamp}]:",
        f"T1 image: {record.t1}",
        f"T2 map:   {record.t2map}",
        f"Hippocampal segmentation left: {record.seg_left}",
        f"Hippocampal segmentation right: {record.seg_right}",
        "",
        record.registration,
        "",
        _hemisphere_line('R', record.right),
        _hemisphere_line('L', record.left),
        "",
        _ratio_line('R:L', record.ratios.right_to_left),
        _ratio_line('L:R', record.ratios.left_to_right),
    ]
    return '\n'.join(lines) + '\n'


def write_report(record: ReportRecord, report_path: Path) -> Path:
    """Write the report, replacing any report from a previous run."""
    report_path = Path(report_path)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(format_report(record), encoding='utf-8')
    logger.info(f"Report written: {report_path}")
    return report_path


def echo_report(text: str, stream=None) -> None:
    """Print the report framed by separator lines."""
    print('', file=stream)
    print(SEPARATOR, file=stream)
    print(text.rstrip('\n'), file=stream)
    print(SEPARATOR, file=stream)


def mask_output_name(t2map: Path, hemisphere: str, extension: str = '.nii.gz') -> str:
    """
    Output name of a corrected mask, derived from the T2 map's basename.

    'T2map.nii.gz' -> 'T2map_mask_L.nii.gz'
    """
    name = Path(t2map).name
    stem = name.split('.nii', 1)[0] if '.nii' in name else name
    return f"{stem}_mask_{hemisphere}{extension}"


def persist_masks(
    corrected: Dict[str, Path],
    t2map: Path,
    out_dir: Path,
    extension: str = '.nii.gz'
) -> Dict[str, Path]:
    """Move the corrected masks from the working directory into out_dir."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    persisted = {}
    for hemisphere, mask in corrected.items():
        target = out_dir / mask_output_name(t2map, hemisphere, extension)
        if target.exists():
            target.unlink()
        shutil.move(str(mask), str(target))
        persisted[hemisphere] = target
        logger.info(f"Saved {hemisphere} mask: {target}")

    return persisted


def viewer_command(
    viewer: str,
    t2map: Path,
    masks: Sequence[Path],
    display_range: Sequence[float] = (0, 300),
    opacity: float = 0.5,
    colour: str = 'red'
) -> List[str]:
    """Command line overlaying the masks semi-transparently on the T2 map."""
    low, high = display_range
    if viewer == 'fslview':
        cmd = ['fslview', '-m', 'single', str(t2map), '-b', f"{low:g},{high:g}"]
        for mask in masks:
            cmd += [str(mask), '-l', colour.capitalize(), '-t', f"{opacity:g}"]
        return cmd
    if viewer == 'fsleyes':
        cmd = ['fsleyes', str(t2map), '-dr', f"{low:g}", f"{high:g}"]
        for mask in masks:
            cmd += [str(mask), '-cm', colour.lower(), '-a', f"{opacity * 100:g}"]
        return cmd
    raise ValueError(f"Unsupported viewer: {viewer}")


def launch_viewer(cmd: Sequence[str]) -> Optional[subprocess.Popen]:
    """Start the viewer detached; the pipeline does not wait for it."""
    logger.info(f"Launching viewer: {' '.join(cmd)}")
    try:
        return subprocess.Popen(
            list(cmd),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        logger.warning(f"Could not start viewer {cmd[0]}: {e}")
        return None
