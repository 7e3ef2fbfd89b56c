import re
import secrets
import unicodedata
from typing import Callable, Optional

from core.exceptions import InvalidPinError, ValidationError

PIN_PATTERN = re.compile(r"^RDR-[A-Z]{2}\d{6}$")
PIN_PREFIX = "RDR"
MAX_ATTEMPTS = 50


def is_valid_pin(reader_pin: Optional[str]) -> bool:
    return bool(reader_pin) and PIN_PATTERN.match(reader_pin) is not None


def validate_pin(reader_pin: Optional[str]) -> str:
    pin = (reader_pin or "").strip()
    if not is_valid_pin(pin):
        raise InvalidPinError(pin)
    return pin


def initials(name: str) -> str:
    """First letters of the first and last name, ASCII upper case"""
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    words = [w for w in re.split(r"[^A-Za-z]+", ascii_name) if w]
    if not words:
        raise ValidationError("Reader name must contain letters", field="reader_name")
    if len(words) == 1:
        return (words[0][:2] + "X")[:2].upper()
    return (words[0][0] + words[-1][0]).upper()


def generate_pin(name: str, exists: Callable[[str], bool]) -> str:
    """RDR-<initials><6 digits>, unique according to `exists`"""
    prefix = f"{PIN_PREFIX}-{initials(name)}"
    for _ in range(MAX_ATTEMPTS):
        pin = f"{prefix}{secrets.randbelow(1_000_000):06d}"
        if not exists(pin):
            return pin
    raise ValidationError(f"Could not allocate a unique PIN for {prefix}")
