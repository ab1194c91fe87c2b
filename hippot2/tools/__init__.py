"""External image-processing collaborators."""

from hippot2.tools.base import BrainExtractor, ImageToolkit, VolumeStatistics
from hippot2.tools.registration import (
    AladinRegistration,
    FlirtRegistration,
    RegistrationStrategy,
    make_registration,
)

__all__ = [
    'AladinRegistration',
    'BrainExtractor',
    'FlirtRegistration',
    'ImageToolkit',
    'RegistrationStrategy',
    'VolumeStatistics',
    'make_registration',
]
