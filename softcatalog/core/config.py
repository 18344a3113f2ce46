import os
import sys
from pathlib import Path


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or "=" not in stripped:
                continue
            key, value = stripped.split("=", 1)
            key = key.strip()
            if not key or key in os.environ:
                continue
            cleaned = value.strip().strip('"').strip("'")
            os.environ[key] = cleaned
    except OSError:
        return


def _load_env() -> None:
    candidates = []

    # PyInstaller frozen mode - check next to the executable
    if getattr(sys, "frozen", False):
        exe_dir = Path(sys.executable).parent
        candidates.extend([exe_dir / ".env", exe_dir.parent / ".env"])
    else:
        current = Path(__file__).resolve()
        candidates.extend([current.parents[2] / ".env", Path.cwd() / ".env"])

    for candidate in candidates:
        _load_env_file(candidate)


_load_env()


def _default_data_dir() -> Path:
    explicit = os.getenv("SOFTCATALOG_DATA_DIR", "").strip()
    if explicit:
        return Path(explicit).expanduser()
    local_app_data = os.getenv("LOCALAPPDATA", "").strip()
    if local_app_data:
        return Path(local_app_data) / "SoftCatalog"
    return Path.home() / ".softcatalog"


def sqlite_url(path) -> str:
    return f"sqlite:///{Path(path).expanduser().resolve().as_posix()}"


def _database_url(url_var: str, path_var: str, filename: str) -> str:
    explicit_url = os.getenv(url_var, "").strip()
    if explicit_url:
        return explicit_url
    explicit_path = os.getenv(path_var, "").strip()
    if explicit_path:
        return sqlite_url(explicit_path)
    return sqlite_url(DATA_DIR / filename)


DATA_DIR = _default_data_dir()
CATALOG_DATABASE_URL = _database_url("CATALOG_DATABASE_URL", "CATALOG_DB_PATH", "master_catalog.db")
LOCAL_DATABASE_URL = _database_url("LOCAL_DATABASE_URL", "LOCAL_DB_PATH", "ref.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

STALE_INSTALL_DAYS = int(os.getenv("STALE_INSTALL_DAYS", "30"))
DETECTION_ON_STARTUP = os.getenv("DETECTION_ON_STARTUP", "true").lower() in (
    "1",
    "true",
    "yes",
    "on",
)
DETECTION_INTERVAL_SECONDS = int(os.getenv("DETECTION_INTERVAL_SECONDS", "0"))

ENRICHMENT_ENABLED = os.getenv("ENRICHMENT_ENABLED", "true").lower() in (
    "1",
    "true",
    "yes",
    "on",
)
ENRICHMENT_BATCH_SIZE = int(os.getenv("ENRICHMENT_BATCH_SIZE", "50"))
ENRICHMENT_MAX_BATCHES = int(os.getenv("ENRICHMENT_MAX_BATCHES", "20"))
ENRICHMENT_BATCH_DELAY_SECONDS = float(os.getenv("ENRICHMENT_BATCH_DELAY_SECONDS", "1.0"))
ENRICHMENT_ITEM_DELAY_SECONDS = float(os.getenv("ENRICHMENT_ITEM_DELAY_SECONDS", "0.5"))
ENRICHMENT_MAX_AGE_DAYS = int(os.getenv("ENRICHMENT_MAX_AGE_DAYS", "30"))
GAME_MATCH_THRESHOLD = float(os.getenv("GAME_MATCH_THRESHOLD", "0.85"))
SOFTWARE_MATCH_THRESHOLD = float(os.getenv("SOFTWARE_MATCH_THRESHOLD", "0.5"))

HTTP_USER_AGENT = os.getenv("HTTP_USER_AGENT", "SoftCatalog/0.1 (+installed software catalog)")
METADATA_TIMEOUT_SECONDS = int(os.getenv("METADATA_TIMEOUT_SECONDS", "12"))
RAWG_API_KEY = os.getenv("RAWG_API_KEY", "").strip()
RAWG_API_URL = os.getenv("RAWG_API_URL", "https://api.rawg.io/api").rstrip("/")
WIKIPEDIA_API_URL = os.getenv("WIKIPEDIA_API_URL", "https://en.wikipedia.org/w/api.php")
STEAM_STORE_API_URL = os.getenv(
    "STEAM_STORE_API_URL", "https://store.steampowered.com/api/appdetails"
)
# Any source speaking the winget REST protocol (manifestSearch / packageManifests).
WINGET_SOURCE_URL = os.getenv(
    "WINGET_SOURCE_URL", "https://storeedgefd.dsx.mp.microsoft.com/v9.0"
).strip().rstrip("/")

STEAM_PATH = os.getenv("STEAM_PATH", "").strip()
EPIC_MANIFEST_DIR = os.getenv(
    "EPIC_MANIFEST_DIR", r"C:\ProgramData\Epic\EpicGamesLauncher\Data\Manifests"
).strip()
AMAZON_GAMES_DIR = os.getenv("AMAZON_GAMES_DIR", "").strip()

CATALOG_DOWNLOAD_URL = os.getenv("CATALOG_DOWNLOAD_URL", "").strip()
CATALOG_DOWNLOAD_TIMEOUT_SECONDS = int(os.getenv("CATALOG_DOWNLOAD_TIMEOUT_SECONDS", "300"))
