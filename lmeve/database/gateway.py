"""Per-request database connections

Each request opens exactly one connection from the resolved credentials,
selects its schema explicitly and closes the connection when done. There is
no pool: credentials differ between requests.
"""

from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterator, List, Optional
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine, URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from lmeve.config import settings
from lmeve.exceptions import DatabaseException
from lmeve.services.settings_resolver import DatabaseConfig

logger = logging.getLogger(__name__)


def create_mysql_engine(config: DatabaseConfig) -> Engine:
    """Engine for one MySQL server, without a default schema"""
    url = URL.create(
        "mysql+pymysql",
        username=config.username or None,
        password=config.password or None,
        host=config.host,
        port=config.port,
        query={"charset": "utf8mb4"},
    )
    return create_engine(
        url,
        poolclass=NullPool,
        echo=settings.DEBUG,
        # client_flag=0 drops FOUND_ROWS: upserts report 1 for insert, 2 for update, 0 if unchanged
        connect_args={"connect_timeout": settings.DB_CONNECT_TIMEOUT, "client_flag": 0},
    )


def driver_error(exc: Exception) -> tuple:
    """Extract (message, code) from a DBAPI error wrapped by SQLAlchemy"""
    orig = getattr(exc, "orig", None) or exc
    args = getattr(orig, "args", ())
    if len(args) >= 2 and isinstance(args[0], int):
        return str(args[1]), args[0]
    return str(orig), None


class DatabaseGateway:
    """Opens request-scoped connections"""

    def __init__(self, engine_factory: Callable[[DatabaseConfig], Engine] = create_mysql_engine):
        self.engine_factory = engine_factory

    def connect(self, config: DatabaseConfig) -> Connection:
        """
        Open a connection without selecting a schema

        Raises:
            DatabaseException: If the server cannot be reached or rejects the credentials
        """
        engine = self.engine_factory(config)
        try:
            return engine.connect()
        except SQLAlchemyError as e:
            engine.dispose()
            message, code = driver_error(e)
            logger.error(f"MySQL connect failed for {config.username}@{config.host}:{config.port}: {message}")
            raise DatabaseException("MySQL connect failed", {"mysqlError": message, "mysqlErrno": code})

    @staticmethod
    def try_select_schema(conn: Connection, database: str) -> bool:
        """Switch the connection to another schema, False when it is missing or forbidden"""
        if conn.dialect.name != "mysql":
            # single-schema backends (SQLite in tests) have nothing to switch
            return True
        quoted = conn.dialect.identifier_preparer.quote_identifier(database)
        try:
            conn.exec_driver_sql(f"USE {quoted}")
            conn.commit()
        except SQLAlchemyError as e:
            conn.rollback()
            logger.warning(f"Cannot select database {database}: {driver_error(e)[0]}")
            return False
        return True

    def select_schema(self, conn: Connection, database: str) -> None:
        """
        Select the schema for subsequent statements

        Raises:
            DatabaseException: If the schema does not exist or is not accessible
        """
        if not self.try_select_schema(conn, database):
            raise DatabaseException("Database not found or permission denied", {"database": database})

    @contextmanager
    def session(self, config: DatabaseConfig, database: Optional[str] = None) -> Iterator[Connection]:
        """Connection with the schema selected, closed on exit"""
        conn = self.connect(config)
        try:
            self.select_schema(conn, database or config.database)
            yield conn
        finally:
            engine = conn.engine
            conn.close()
            engine.dispose()


ROW_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.strftime(ROW_DATETIME_FORMAT)
    if isinstance(value, date):
        return value.isoformat()
    return value


def fetch_rows(conn: Connection, stmt) -> List[Dict[str, Any]]:
    """
    Execute a read and return its rows as JSON-ready dicts

    Raises:
        DatabaseException: If the statement fails
    """
    try:
        result = conn.execute(stmt)
        return [{key: _json_value(value) for key, value in row._mapping.items()} for row in result]
    except SQLAlchemyError as e:
        message, code = driver_error(e)
        logger.error(f"Query failed: {message}")
        raise DatabaseException("Query failed", {"detail": message, "mysqlErrno": code})


def server_identity(conn: Connection) -> Dict[str, Optional[str]]:
    """Server version and the account the server authenticated us as"""
    if conn.dialect.name == "mysql":
        row = conn.execute(text("SELECT VERSION() AS v, CURRENT_USER() AS u")).first()
        return {"serverVersion": row.v, "currentUser": row.u}
    version = conn.dialect.server_version_info
    return {
        "serverVersion": ".".join(str(part) for part in version) if version else None,
        "currentUser": None,
    }


_gateway = DatabaseGateway()


def get_gateway() -> DatabaseGateway:
    """Gateway dependency"""
    return _gateway
