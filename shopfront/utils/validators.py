import re

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_quantity(text: str) -> int:
    """Whole number of units; '0' and negatives are allowed (they mean removal)."""
    return int(text.strip())


def require_email(v: str) -> str:
    v = v.strip()
    if not _EMAIL_RE.match(v):
        raise ValueError("email is not valid")
    return v


def require_name(v: str) -> str:
    v = v.strip()
    if not 2 <= len(v) <= 50:
        raise ValueError("name must be 2-50 characters")
    return v


def require_password(v: str, min_length: int = 6) -> str:
    if len(v) < min_length:
        raise ValueError(f"password must be at least {min_length} characters")
    return v
