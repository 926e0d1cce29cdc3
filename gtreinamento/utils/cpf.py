"""CPF helpers shared by the API and the workflow client.

Only the length rule is enforced (11 digits after stripping punctuation);
check digits are not validated because registry imports carry placeholder
CPFs that must still be usable for attendance.
"""

import re

CPF_LENGTH = 11

_NON_DIGITS = re.compile(r"\D")


def normalize_cpf(value: str | int | None) -> str:
    """Strip everything but digits."""
    if value is None:
        return ""
    return _NON_DIGITS.sub("", str(value))


def is_valid_cpf_length(value: str | int | None) -> bool:
    return len(normalize_cpf(value)) == CPF_LENGTH


def mask_cpf(value: str | int | None) -> str:
    """Format as ``000.000.000-00``; partial input is formatted progressively."""
    digits = normalize_cpf(value)[:CPF_LENGTH]
    if len(digits) <= 3:
        return digits
    if len(digits) <= 6:
        return f"{digits[:3]}.{digits[3:]}"
    if len(digits) <= 9:
        return f"{digits[:3]}.{digits[3:6]}.{digits[6:]}"
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"


def mask_cpf_restricted(value: str | int | None) -> str:
    """Hide the middle digits: ``123.***.***-01``."""
    digits = normalize_cpf(value)[:CPF_LENGTH]
    if len(digits) <= 3:
        return digits
    if len(digits) < CPF_LENGTH:
        return f"{digits[:3]}.***.***-**"
    return f"{digits[:3]}.***.***-{digits[9:]}"
