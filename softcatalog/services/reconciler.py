"""Merge generic inventory and platform detections into one record per title."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import List, Optional, Sequence, Set, Tuple

from ..categories import DEFAULT_CATEGORY
from ..detectors.base import GENERIC_SOURCE, CandidateRecord, Detector, normalize_path_key

logger = logging.getLogger(__name__)


def _identity(candidate: CandidateRecord) -> Tuple[str, str, str]:
    source = candidate.source.casefold()
    if candidate.external_id:
        return ("id", source, candidate.external_id.casefold())
    location = normalize_path_key(candidate.install_location)
    if location:
        return ("path", source, location)
    return ("name", source, candidate.name_key())


def safe_list_candidates(detector: Detector) -> List[CandidateRecord]:
    try:
        return list(detector.list_candidates())
    except Exception:
        logger.exception("Detector %r failed while listing candidates; skipping it", detector)
        return []


def safe_classify(detector: Detector, path: str) -> Optional[CandidateRecord]:
    try:
        matched, candidate = detector.classify_path(path)
    except Exception:
        logger.exception("Detector %r failed to classify %s", detector, path)
        return None
    if matched and candidate is not None and candidate.name:
        return candidate
    return None


def classify_baseline(
    baseline: Sequence[CandidateRecord], detectors: Sequence[Detector]
) -> Tuple[List[CandidateRecord], Set[Tuple[str, str, str]]]:
    """Let platform detectors claim generic entries by install path.

    Returns the rewritten baseline plus the identities of every claimed
    record. Detectors are asked in order and the first match wins.
    """
    result: List[CandidateRecord] = []
    claimed: Set[Tuple[str, str, str]] = set()
    for entry in baseline:
        replacement = None
        if entry.install_location:
            for detector in detectors:
                replacement = safe_classify(detector, entry.install_location)
                if replacement is not None:
                    logger.debug(
                        "%s claimed %r at %s", detector.source, entry.name, entry.install_location
                    )
                    break
        if replacement is None:
            result.append(entry)
            continue
        claimed.add(_identity(replacement))
        result.append(replacement.with_baseline(entry))
    return result, claimed


def select_representative(
    group: Sequence[CandidateRecord], generic_source: str = GENERIC_SOURCE
) -> CandidateRecord:
    """Platform source beats generic inventory, then a real category beats the default."""
    generic = generic_source.casefold()
    for candidate in group:
        if candidate.source and candidate.source.casefold() != generic:
            return candidate
    for candidate in group:
        if candidate.category != DEFAULT_CATEGORY:
            return candidate
    return group[0]


def deduplicate(
    candidates: Sequence[CandidateRecord], generic_source: str = GENERIC_SOURCE
) -> List[CandidateRecord]:
    groups: "OrderedDict[str, List[CandidateRecord]]" = OrderedDict()
    for candidate in candidates:
        groups.setdefault(candidate.name_key(), []).append(candidate)

    representatives: List[CandidateRecord] = []
    for key, members in groups.items():
        if not key.strip():
            continue
        chosen = select_representative(members, generic_source)
        if len(members) > 1:
            dropped = [member.source for member in members if member is not chosen]
            logger.debug("Kept %s entry for %r, dropped %s", chosen.source, chosen.name, dropped)
        representatives.append(chosen)

    representatives.sort(key=lambda item: (item.name_key(), item.name))
    return representatives


def reconcile_candidates(
    baseline: Sequence[CandidateRecord],
    detectors: Sequence[Detector],
    generic_source: str = GENERIC_SOURCE,
) -> List[CandidateRecord]:
    classified, claimed = classify_baseline(baseline, detectors)
    combined: List[CandidateRecord] = list(classified)
    for detector in detectors:
        for candidate in safe_list_candidates(detector):
            if _identity(candidate) in claimed:
                continue
            combined.append(candidate)
    return deduplicate(combined, generic_source)


class Reconciler:
    """Runs the generic scan first, then every platform detector."""

    def __init__(
        self,
        generic: Optional[Detector],
        detectors: Sequence[Detector],
        generic_source: str = GENERIC_SOURCE,
    ) -> None:
        self.generic = generic
        self.detectors = list(detectors)
        self.generic_source = generic_source

    def reconcile(self) -> List[CandidateRecord]:
        baseline = safe_list_candidates(self.generic) if self.generic is not None else []
        results = reconcile_candidates(baseline, self.detectors, generic_source=self.generic_source)
        logger.info(
            "Reconciled %d generic entries and %d detectors into %d titles",
            len(baseline),
            len(self.detectors),
            len(results),
        )
        return results
