from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event

db = SQLAlchemy()


def _is_shared_memory(url) -> bool:
    # sqlite:// with no file runs on one StaticPool connection; there is nothing to contend with
    database = url.database or ""
    return database in ("", ":memory:") or "mode=memory" in database


def enable_sqlite_write_locking(engine) -> bool:
    """
    Makes every transaction on a file-backed SQLite engine start with
    BEGIN IMMEDIATE, so read-then-write sections (count sessions, evict,
    insert) hold the database write lock from their first SELECT.

    pysqlite defers BEGIN until the first DML statement, which leaves the
    reads unprotected and turns SELECT ... FOR UPDATE into a no-op. Other
    dialects keep their own row locks and are left alone.
    """
    if engine.dialect.name != "sqlite" or _is_shared_memory(engine.url):
        return False

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return True
