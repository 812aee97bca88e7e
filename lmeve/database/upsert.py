"""Generic insert-or-update keyed by a natural id

Table definitions double as the declarative schema: each column's SQL type
decides how incoming JSON values are coerced before binding.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
import json
import logging

from sqlalchemy import Boolean, DateTime, Float, Integer, Numeric, Table, String, Text
from sqlalchemy.dialects import mysql, sqlite
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

# Columns maintained by the database, never taken from input
MANAGED_COLUMNS = frozenset({"id", "last_updated", "created_date", "updated_date"})

# Set explicitly on conflict updates, column onupdate does not apply there
TOUCHED_COLUMNS = ("last_updated", "updated_date")


class CoercionError(ValueError):
    """Value cannot be converted to the column type"""


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ESI timestamps (ISO 8601, optional Z) or MySQL DATETIME strings to naive UTC"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise CoercionError(f"Invalid datetime: {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def coerce_value(column, value: Any) -> Any:
    """Convert a JSON value to what the column binds"""
    column_type = column.type
    if isinstance(column_type, Boolean):
        # flags default to false when absent
        return bool(value)
    if value is None:
        return None
    try:
        if isinstance(column_type, Integer):
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, float) and not value.is_integer():
                raise CoercionError(f"Not an integer: {value!r}")
            return int(value)
        if isinstance(column_type, (Numeric, Float)):
            return float(value)
        if isinstance(column_type, DateTime):
            return parse_datetime(value)
        if isinstance(column_type, (String, Text)):
            if isinstance(value, (list, dict)):
                return json.dumps(value)
            return str(value)
    except CoercionError:
        raise
    except (TypeError, ValueError) as e:
        raise CoercionError(f"{column.name}: {e}")
    return value


@dataclass
class UpsertSpec:
    """Which table to write and which column identifies a row"""

    table: Table
    key: str
    defaults: Optional[Dict[str, Any]] = None
    fields: Optional[List[str]] = None
    update_fields: Optional[List[str]] = None

    @classmethod
    def for_model(cls, model, defaults: Optional[Dict[str, Any]] = None) -> "UpsertSpec":
        return cls(table=model.__table__, key=model.__natural_key__, defaults=defaults)

    @property
    def columns(self) -> List[str]:
        if self.fields is not None:
            return list(self.fields)
        return [c.name for c in self.table.columns if c.name not in MANAGED_COLUMNS]

    def row_values(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Build the full column -> value mapping for one record

        Raises:
            CoercionError: If the key is missing or a value has the wrong shape
        """
        if record.get(self.key) is None:
            raise CoercionError(f"Missing key: {self.key}")
        values = {}
        defaults = self.defaults or {}
        for name in self.columns:
            value = record.get(name)
            if value is None and name in defaults:
                value = defaults[name]
            values[name] = coerce_value(self.table.c[name], value)
        return values

    def statement(self, conn: Connection, values: Dict[str, Any]):
        """Dialect-specific insert; on conflict overwrites update_fields, or every non-key column"""
        if self.update_fields is not None:
            update_columns = list(self.update_fields)
        else:
            update_columns = [name for name in values if name != self.key]
        now = datetime.utcnow()
        touched = {name: now for name in TOUCHED_COLUMNS if name in self.table.c}
        if conn.dialect.name == "mysql":
            stmt = mysql.insert(self.table).values(**values)
            return stmt.on_duplicate_key_update({**{name: stmt.inserted[name] for name in update_columns}, **touched})
        if conn.dialect.name == "sqlite":
            stmt = sqlite.insert(self.table).values(**values)
            return stmt.on_conflict_do_update(
                index_elements=[self.key],
                set_={**{name: stmt.excluded[name] for name in update_columns}, **touched},
            )
        raise NotImplementedError(f"Upsert not supported for dialect {conn.dialect.name}")


@dataclass
class UpsertResult:
    """Outcome counts of a bulk upsert"""

    inserted: int = 0
    updated: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"inserted": self.inserted, "updated": self.updated, "failed": self.failed}


def is_insert(rowcount: int) -> bool:
    """MySQL reports 1 affected row for a fresh insert; 2 or 0 mean an existing row"""
    return rowcount == 1


def upsert_one(conn: Connection, spec: UpsertSpec, record: Dict[str, Any]) -> int:
    """
    Upsert a single record in its own transaction

    Returns:
        Affected-row count reported by the driver
    """
    values = spec.row_values(record)
    if conn.in_transaction():
        conn.commit()
    with conn.begin():
        result = conn.execute(spec.statement(conn, values))
    return result.rowcount


def bulk_upsert(conn: Connection, spec: UpsertSpec, records: Iterable[Any]) -> UpsertResult:
    """
    Upsert records one by one; a bad record is counted and skipped

    Args:
        conn: Connection with the schema selected
        spec: Target table and key
        records: Decoded JSON array

    Returns:
        Inserted/updated/failed counts
    """
    result = UpsertResult()
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            result.failed += 1
            logger.warning(f"{spec.table.name}[{index}]: record is not an object")
            continue
        try:
            rowcount = upsert_one(conn, spec, record)
        except (CoercionError, SQLAlchemyError) as e:
            result.failed += 1
            reason = str(e).split("\n")[0]
            logger.warning(f"{spec.table.name}[{index}]: upsert failed: {reason}")
            continue
        if is_insert(rowcount):
            result.inserted += 1
        else:
            result.updated += 1

    logger.info(
        f"Upserted {spec.table.name}: inserted={result.inserted} "
        f"updated={result.updated} failed={result.failed}"
    )
    return result
