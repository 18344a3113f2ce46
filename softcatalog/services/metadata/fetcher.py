from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence, Tuple

from ...categories import SoftwareCategory
from ...core.config import GAME_MATCH_THRESHOLD, SOFTWARE_MATCH_THRESHOLD
from .base import MetadataProvider, MetadataResult
from .rawg import RawgProvider
from .steam_store import SteamStoreProvider
from .wikipedia import WikipediaProvider
from .winget import WingetProvider

logger = logging.getLogger(__name__)

GAME_SOURCE_TOKENS = (
    "steam",
    "gog",
    "epic",
    "amazon games",
    "ea app",
    "origin",
    "ubisoft",
    "battle.net",
    "battlenet",
    "xbox",
)


def is_game_entry(category: Optional[str], source: Optional[str]) -> bool:
    if SoftwareCategory.parse(category) == SoftwareCategory.GAMES:
        return True
    lowered = (source or "").casefold()
    return any(token in lowered for token in GAME_SOURCE_TOKENS)


def _ordered(providers: Sequence[MetadataProvider]) -> List[MetadataProvider]:
    return sorted(providers, key=lambda provider: provider.priority)


class MetadataFetcher:
    """Routes a catalog entry to game or software providers and applies match thresholds."""

    def __init__(
        self,
        game_providers: Optional[Sequence[MetadataProvider]] = None,
        software_providers: Optional[Sequence[MetadataProvider]] = None,
        game_threshold: float = GAME_MATCH_THRESHOLD,
        software_threshold: float = SOFTWARE_MATCH_THRESHOLD,
    ) -> None:
        self.game_providers = _ordered(game_providers if game_providers is not None else [])
        self.software_providers = _ordered(software_providers if software_providers is not None else [])
        self.game_threshold = game_threshold
        self.software_threshold = software_threshold

    @classmethod
    def default(cls) -> "MetadataFetcher":
        return cls(
            game_providers=[SteamStoreProvider(), RawgProvider()],
            software_providers=[WingetProvider(), WikipediaProvider()],
        )

    def _accept_game(self, result: Optional[MetadataResult]) -> bool:
        return result is not None and result.confidence >= self.game_threshold

    def _accept_software(self, result: Optional[MetadataResult]) -> bool:
        return result is not None and result.confidence > self.software_threshold

    @staticmethod
    def _lookup(
        provider: MetadataProvider, name: str, lookup: Callable[[], Optional[MetadataResult]]
    ) -> Optional[MetadataResult]:
        try:
            return lookup()
        except Exception as exc:
            logger.warning("%s lookup for %r failed: %s", provider.name, name, exc)
            return None

    def fetch(
        self,
        name: str,
        source: str,
        external_id: Optional[str] = None,
        category: Optional[str] = None,
        publisher: Optional[str] = None,
    ) -> Tuple[Optional[MetadataResult], bool]:
        """Look ``name`` up; ``(None, False)`` is the normal "nothing found" answer.

        A provider that raises is logged and the next one is tried.
        """
        if is_game_entry(category, source):
            for provider in self.game_providers:
                if not provider.is_available():
                    continue
                if external_id:
                    result = self._lookup(
                        provider, name, lambda: provider.get_by_external_id(source, external_id)
                    )
                    if self._accept_game(result):
                        return result, True
                result = self._lookup(provider, name, lambda: provider.search_by_name(name))
                if self._accept_game(result):
                    return result, True
                if result is not None:
                    logger.debug(
                        "%s match for %r below threshold (%.2f)", provider.name, name, result.confidence
                    )
            return None, False

        for provider in self.software_providers:
            if not provider.is_available():
                continue
            result = self._lookup(
                provider, name, lambda: provider.search_by_name_and_publisher(name, publisher)
            )
            if self._accept_software(result):
                return result, True
        return None, False
