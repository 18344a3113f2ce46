import logging
import threading
import weakref
from pathlib import Path

from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

_SCHEMA_LOCK = threading.Lock()
_READY: "weakref.WeakKeyDictionary" = weakref.WeakKeyDictionary()

# Columns added after the first catalog files were distributed.
_LATE_COLUMNS = {
    "software_ref": {
        "cover_image_url": "VARCHAR(1000)",
        "metadata_json": "TEXT",
        "metadata_source": "VARCHAR(100)",
        "last_enriched_date": "{timestamp}",
        "last_enrichment_attempt": "{timestamp}",
    },
    "installed_software": {
        "icon_path": "VARCHAR(1000)",
        "registry_key": "VARCHAR(1000)",
    },
}


def _ensure_sqlite_directory(engine) -> None:
    if engine.dialect.name != "sqlite":
        return
    database = engine.url.database
    if not database or database == ":memory:":
        return
    Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def _apply_alters(engine, statements: list[str]) -> None:
    if not statements:
        return
    with engine.begin() as connection:
        for statement in statements:
            logger.info("Schema upgrade: %s", statement)
            connection.execute(text(statement))


def _upgrade_columns(engine) -> None:
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    timestamp_type = "TIMESTAMP" if engine.dialect.name == "postgresql" else "DATETIME"

    for table, wanted in _LATE_COLUMNS.items():
        if table not in tables:
            continue
        columns = {col["name"] for col in inspector.get_columns(table)}
        alters = []
        for column, column_type in wanted.items():
            if column not in columns:
                resolved = column_type.format(timestamp=timestamp_type)
                alters.append(f"ALTER TABLE {table} ADD COLUMN {column} {resolved}")
        _apply_alters(engine, alters)


def ensure_schema(engine, base) -> None:
    """Create the tables of ``base`` on ``engine`` once per process.

    Safe to call before every use; only the first call per engine and
    declarative base touches the database.
    """
    ready = _READY.get(engine)
    if ready is not None and base in ready:
        return
    with _SCHEMA_LOCK:
        ready = _READY.setdefault(engine, set())
        if base in ready:
            return
        _ensure_sqlite_directory(engine)
        try:
            base.metadata.create_all(bind=engine)
        except OperationalError as exc:
            # Two processes opening the same fresh file can race on CREATE TABLE.
            if "already exists" not in str(exc).lower():
                raise
        _upgrade_columns(engine)
        ready.add(base)
