"""External metadata providers used by the enrichment scheduler."""

from .base import MetadataProvider, MetadataResult
from .fetcher import MetadataFetcher, is_game_entry
from .rawg import RawgProvider
from .steam_store import SteamStoreProvider
from .wikipedia import WikipediaProvider
from .winget import WingetProvider

__all__ = [
    "MetadataProvider",
    "MetadataResult",
    "MetadataFetcher",
    "is_game_entry",
    "RawgProvider",
    "SteamStoreProvider",
    "WikipediaProvider",
    "WingetProvider",
]
