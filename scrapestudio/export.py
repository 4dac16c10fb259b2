"""Dataset serializers: json, csv, sql and vector placeholder."""

from __future__ import annotations

import json
import re
import uuid
from typing import Any, Callable, Dict, List, Mapping, Sequence, Union

from .errors import ValidationError

Dataset = Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]

FORMATS = ("json", "csv", "sql", "vector")
DEFAULT_TABLE = "scraped_data"
DEFAULT_VECTOR_DIM = 128

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def export_dataset(data: Dataset, format: str = "json", **opts: Any) -> str:
    """Serialize one record or a list of records.

    Options: `table_name` (sql), `vector_dim` (vector).
    """
    exporter = _EXPORTERS.get((format or "").lower())
    if exporter is None:
        raise ValidationError(f"unsupported export format: {format!r} (expected one of {', '.join(FORMATS)})")
    return exporter(data, **opts)


def _as_records(data: Dataset) -> List[Mapping[str, Any]]:
    if isinstance(data, Mapping):
        return [data]
    records = list(data)
    for item in records:
        if not isinstance(item, Mapping):
            raise ValidationError(f"records must be mappings, got {type(item).__name__}")
    return records


def _flatten(value: Any) -> str:
    """Text form of a cell: lists joined with ', ', mappings as JSON."""
    if isinstance(value, (list, tuple)):
        return ", ".join(_flatten(v) if isinstance(v, (list, tuple, dict)) else str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return str(value)


def to_json(data: Dataset, **_: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def _csv_quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return _csv_quote(_flatten(value))


def _csv_header(key: str) -> str:
    if any(ch in key for ch in ',"\r\n'):
        return _csv_quote(key)
    return key


def to_csv(data: Dataset, **_: Any) -> str:
    records = _as_records(data)
    keys = sorted({key for record in records for key in record})
    lines = [",".join(_csv_header(k) for k in keys)]
    for record in records:
        lines.append(",".join(_csv_cell(record.get(k)) for k in keys))
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

def _sql_ident(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def _sql_value(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    return "'" + _flatten(value).replace("'", "''") + "'"


def to_sql(data: Dataset, table_name: str = DEFAULT_TABLE, **_: Any) -> str:
    if not _TABLE_NAME.match(table_name or ""):
        raise ValidationError(f"invalid table name: {table_name!r}")
    records = _as_records(data)
    keys: List[str] = []
    for record in records:
        for key in record:
            if key not in keys:
                keys.append(key)

    columns = ["  id INT AUTO_INCREMENT PRIMARY KEY"]
    columns += [f"  {_sql_ident(k)} TEXT" for k in keys]
    columns.append("  created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP")
    parts = [f"CREATE TABLE IF NOT EXISTS {table_name} (\n" + ",\n".join(columns) + "\n);\n"]

    if keys:
        column_list = ", ".join(_sql_ident(k) for k in keys)
        for record in records:
            values = ", ".join(_sql_value(record.get(k)) for k in keys)
            parts.append(f"INSERT INTO {table_name} ({column_list}) VALUES ({values});")
    return "\n".join(parts) + "\n"


# ---------------------------------------------------------------------------
# Vector placeholder
# ---------------------------------------------------------------------------

def to_vector(data: Dataset, vector_dim: int = DEFAULT_VECTOR_DIM, **_: Any) -> str:
    """Wrap records for a vector store. The embedding is a zero placeholder."""
    records: List[Any] = [data] if isinstance(data, (Mapping, str)) else list(data)
    vectors = [
        {
            "id": str(uuid.uuid4()),
            "content": item if isinstance(item, str) else json.dumps(item, ensure_ascii=False, default=str),
            "embedding": [0.0] * int(vector_dim),
            "metadata": {"source": "scraper"},
        }
        for item in records
    ]
    return json.dumps({"vectors": vectors, "data": data}, indent=2, ensure_ascii=False, default=str)


_EXPORTERS: Dict[str, Callable[..., str]] = {
    "json": to_json,
    "csv": to_csv,
    "sql": to_sql,
    "vector": to_vector,
}
