"""
Structured Validation Error Utilities

Every client-facing failure of a ledger operation is rendered with the
same body so the frontend can show `message` directly:

{
    "success": false,
    "message": "Client name is required"
}
"""

from datetime import date, datetime
from typing import Any, Optional
import logging
import math

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for errors rendered as {success: false, message}."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, parameter: Optional[str] = None):
        self.message = message
        self.parameter = parameter
        super().__init__(message)


class LedgerValidationError(LedgerError):
    """Missing or invalid input (400)."""


class LedgerNotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND


class LedgerPermissionError(LedgerError):
    status_code = status.HTTP_403_FORBIDDEN


def error_body(message: str) -> dict:
    return {"success": False, "message": message}


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Render a LedgerError raised anywhere below a route."""
    logger.info(
        f"{request.method} {request.url.path} rejected: {exc.message}",
        extra={"status_code": exc.status_code, "parameter": exc.parameter}
    )
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))


def raise_missing_parameter(parameter: str, message: Optional[str] = None):
    """
    Raise a 400 for a required parameter that was not supplied.

    Args:
        parameter: Name of the missing parameter
        message: Optional custom message
    """
    raise LedgerValidationError(message or f"{parameter} is required", parameter=parameter)


def raise_invalid_parameter(parameter: str, message: str, value: Optional[Any] = None):
    """
    Raise a 400 for a parameter that was supplied but is unusable.

    Args:
        parameter: Name of the invalid parameter
        message: Description of the validation error
        value: The invalid value, logged truncated
    """
    if value is not None:
        logger.debug(f"Invalid {parameter}: {str(value)[:100]}")
    raise LedgerValidationError(message, parameter=parameter)


def require_text(value: Any, parameter: str, message: Optional[str] = None) -> str:
    """Return the trimmed string value or raise if it is missing or blank."""
    if value is None or not str(value).strip():
        raise_missing_parameter(parameter, message)
    return str(value).strip()


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a yyyy-MM-dd string, tolerating a trailing time part.

    Returns None for blank or unparsable input.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if "T" in text:
        text = text.split("T", 1)[0]
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        return None


def require_date(value: Optional[str], parameter: str) -> date:
    """Parse a required yyyy-MM-dd value or raise a 400."""
    require_text(value, parameter)
    parsed = parse_iso_date(value)
    if parsed is None:
        raise_invalid_parameter(parameter, f"{parameter} must be a valid date (yyyy-MM-dd)", value)
    return parsed


def parse_amount(value: Any, parameter: str = "amount", default: Optional[float] = None) -> float:
    """Coerce a JSON/query value to float or raise a 400."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise_missing_parameter(parameter)
    if isinstance(value, bool):
        raise_invalid_parameter(parameter, f"{parameter} must be a number", value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise_invalid_parameter(parameter, f"{parameter} must be a number", value)
    if not math.isfinite(number):
        raise_invalid_parameter(parameter, f"{parameter} must be a number", value)
    return number
