"""Installed-software detectors and the static list the reconciler walks."""

from typing import List

from .amazon import AmazonGamesDetector
from .base import GENERIC_SOURCE, CandidateRecord, Detector
from .ea import EAAppDetector
from .epic import EpicGamesDetector
from .gog import GOGGalaxyDetector
from .registry import RegistryInventoryDetector
from .steam import SteamDetector
from .ubisoft import UbisoftConnectDetector

# Precedence order for path classification: the first detector to claim a path wins.
PLATFORM_DETECTORS = [
    SteamDetector,
    EpicGamesDetector,
    GOGGalaxyDetector,
    UbisoftConnectDetector,
    EAAppDetector,
    AmazonGamesDetector,
]


def default_platform_detectors() -> List[Detector]:
    """Fresh detector instances; manifest caches live for one detection pass."""
    return [detector_class() for detector_class in PLATFORM_DETECTORS]


__all__ = [
    "GENERIC_SOURCE",
    "CandidateRecord",
    "Detector",
    "RegistryInventoryDetector",
    "SteamDetector",
    "EpicGamesDetector",
    "GOGGalaxyDetector",
    "UbisoftConnectDetector",
    "EAAppDetector",
    "AmazonGamesDetector",
    "PLATFORM_DETECTORS",
    "default_platform_detectors",
]
