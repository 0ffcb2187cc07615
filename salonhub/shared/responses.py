"""Success envelope and JSON-safe conversion of ORM values"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional


def money(value) -> float:
    """Numeric column value as a float for JSON output"""
    if value is None:
        return 0.0
    return float(value)


def iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def jsonable(value: Any) -> Any:
    """Recursively convert Decimals and dates so a payload can be stored as JSON"""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value


def success(message: str, data: Any = None) -> dict:
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body
