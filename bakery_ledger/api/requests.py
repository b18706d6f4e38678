"""Request parsing helpers shared by the blueprints."""

from datetime import date
from typing import Any, Dict, Optional

from flask import request

from ..services.exceptions import ValidationError
from ..utils.constants import ERROR_INVALID_DATE
from ..utils.datetime_utils import parse_date
from .serializers import snakify


def json_body() -> Dict[str, Any]:
    """Request JSON object with snake_case keys."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError(["body: Request body must be a JSON object"])
    return snakify(payload)


def date_arg(name: str, value: Any = None, required: bool = True) -> Optional[date]:
    """
    Parse an ISO date from the query string (or from ``value`` when given).

    Raises:
        ValidationError: Missing when required, or not an ISO date
    """
    if value is None:
        value = request.args.get(name)
    if value in (None, ""):
        if required:
            raise ValidationError([f"{name}: This field is required"])
        return None
    try:
        return parse_date(value)
    except (TypeError, ValueError):
        raise ValidationError([f"{name}: {ERROR_INVALID_DATE}"])
