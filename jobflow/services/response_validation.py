"""
Response value validation.

Checks a submitted value against its question's response type and returns
the canonical text form that is stored and compared by skip and transition
logic.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from jobflow.errors import ValidationError
from jobflow.models.enums import ResponseType

RawValue = Union[bool, int, float, str]

_YES = {"yes", "y", "true"}
_NO = {"no", "n", "false"}


def _reject(question, value, reason: str) -> ValidationError:
    return ValidationError(
        f"Invalid answer for question '{question.question_text}': {reason}",
        {"question_id": str(question.id), "value": value, "response_type": question.response_type},
    )


def _as_text(question, value) -> str:
    if not isinstance(value, str):
        raise _reject(question, value, "expected a string")
    text = value.strip()
    if not text:
        raise _reject(question, value, "answer must not be blank")
    return text


def parse_number(value) -> Optional[Decimal]:
    """Finite Decimal for numbers and numeric strings, None otherwise."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def canonical_number(number: Decimal) -> str:
    normalized = number.normalize()
    if normalized == 0:
        return "0"
    return format(normalized, "f")


def validate_response_value(question, value: RawValue) -> str:
    """Return the stored form of value, or raise ValidationError."""
    response_type = question.response_type

    if response_type == ResponseType.YES_NO.value:
        if isinstance(value, bool):
            return "Yes" if value else "No"
        if isinstance(value, str):
            lowered = value.strip().casefold()
            if lowered in _YES:
                return "Yes"
            if lowered in _NO:
                return "No"
        raise _reject(question, value, "expected Yes or No")

    if response_type == ResponseType.NUMBER.value:
        number = parse_number(value)
        if number is None:
            raise _reject(question, value, "expected a number")
        return canonical_number(number)

    if response_type == ResponseType.DATE.value:
        text = _as_text(question, value)
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            raise _reject(question, value, "expected an ISO date (YYYY-MM-DD)")

    if response_type == ResponseType.MULTIPLE_CHOICE.value:
        text = _as_text(question, value)
        for option in question.response_options or []:
            if option.strip().casefold() == text.casefold():
                return option
        raise _reject(question, value, "not one of the configured options")

    if response_type in (ResponseType.TEXT.value, ResponseType.FILE_UPLOAD.value):
        return _as_text(question, value)

    raise _reject(question, value, f"unsupported response type '{response_type}'")


def is_same_answer(question, stored: Optional[str], value: RawValue) -> bool:
    """True when value validates to exactly the stored answer."""
    if stored is None:
        return False
    try:
        return validate_response_value(question, value) == stored
    except ValidationError:
        return False
