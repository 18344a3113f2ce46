from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from .core.config import CATALOG_DATABASE_URL, LOCAL_DATABASE_URL

# The reference catalog is a shareable file; installation facts stay per machine.
CatalogBase = declarative_base()
LocalBase = declarative_base()


def _enable_sqlite_savepoints(engine) -> None:
    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; let SQLAlchemy emit it.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN")


def build_engine(database_url: str):
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    engine_kwargs = {"connect_args": connect_args, "pool_pre_ping": True}
    engine = create_engine(database_url, **engine_kwargs)
    if is_sqlite:
        _enable_sqlite_savepoints(engine)
    return engine


def build_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


catalog_engine = build_engine(CATALOG_DATABASE_URL)
CatalogSession = build_session_factory(catalog_engine)

local_engine = build_engine(LOCAL_DATABASE_URL)
LocalSession = build_session_factory(local_engine)
