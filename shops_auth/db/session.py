from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase): pass


class Database:
    """Owns the engine and session factory for one process.

    Created by the app lifespan and passed to whoever needs persistence;
    ``dispose`` must be called on shutdown.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        if url.startswith('sqlite'):
            self.engine = create_engine(url, echo=echo, connect_args={'check_same_thread': False, 'timeout': 30})
            _serialize_sqlite_writers(self.engine)
        else:
            self.engine = create_engine(url, echo=echo, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, expire_on_commit=False)

    def create_all(self) -> None:
        import shops_auth.db.models  # noqa: F401
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on error."""
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except BaseException:
            db.rollback()
            raise
        finally:
            db.close()


def _serialize_sqlite_writers(engine) -> None:
    # pysqlite defers BEGIN until the first write, which lets two writers
    # deadlock on lock upgrade; take the write lock when the transaction opens.
    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    @event.listens_for(engine, 'begin')
    def _on_begin(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')
