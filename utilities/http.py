"""Request parsing helpers shared by the JSON views."""

from datetime import datetime, date, UTC
from typing import Any, Dict, List, Optional

from flask import jsonify, request

from utilities.errors import InventoryError

TRUE_VALUES = {"1", "true", "yes", "on", "sim"}
FALSE_VALUES = {"0", "false", "no", "off", "nao", "não"}


def get_payload() -> Dict[str, Any]:
    """Body of the request as a dict, whether sent as JSON or as a form."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def ok(status: int = 200, **data):
    body = {"success": True}
    body.update(data)
    return jsonify(body), status


def parse_bool(value: Any, *, field: str = "value") -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        raise InventoryError(f"{field} is required", code="invalid_field")
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise InventoryError(f"{field} must be a boolean", code="invalid_field")


def parse_optional_int(value: Any, *, field: str) -> Optional[int]:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise InventoryError(f"{field} must be an integer", code="invalid_field")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InventoryError(f"{field} must be an integer", code="invalid_field")


def parse_id_list(value: Any, *, field: str = "item_ids") -> List[int]:
    """Accept a JSON list or a comma separated string of ids."""
    if value in (None, ""):
        return []
    if isinstance(value, str):
        value = [part for part in value.split(",") if part.strip()]
    if not isinstance(value, (list, tuple)):
        raise InventoryError(f"{field} must be a list of ids", code="invalid_field")
    ids = []
    for raw in value:
        parsed = parse_optional_int(raw, field=field)
        if parsed is not None and parsed not in ids:
            ids.append(parsed)
    return ids


def parse_datetime(value: Any, *, field: str) -> datetime:
    """Parse an ISO date or datetime into a naive UTC datetime."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not value:
        raise InventoryError(f"{field} is required", code="invalid_field")
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise InventoryError(f"{field} must be an ISO date", code="invalid_field")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed
