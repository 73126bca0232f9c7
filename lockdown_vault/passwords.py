"""Password generator and strength meter."""
import re
import secrets
import string

from .exceptions import ValidationError

MIN_LENGTH = 8
MAX_LENGTH = 128
DEFAULT_LENGTH = 32
SYMBOLS = "!@#$%^&*"

_rng = secrets.SystemRandom()


def generate_password(length: int = DEFAULT_LENGTH, symbols: bool = True) -> str:
    """Generate a random password.

    The result always holds at least one lowercase letter, one uppercase
    letter and one digit, plus one symbol when ``symbols`` is set.

    Raises:
        ValidationError: If length is outside [MIN_LENGTH, MAX_LENGTH].
    """
    try:
        length = int(length)
    except (TypeError, ValueError) as err:
        raise ValidationError("Password length must be a number") from err
    if not MIN_LENGTH <= length <= MAX_LENGTH:
        raise ValidationError(
            f"Password length must be between {MIN_LENGTH} and {MAX_LENGTH}"
        )
    required = [string.ascii_lowercase, string.ascii_uppercase, string.digits]
    if symbols:
        required.append(SYMBOLS)
    charset = "".join(required)
    chars = [secrets.choice(group) for group in required]
    chars.extend(secrets.choice(charset) for _ in range(length - len(chars)))
    _rng.shuffle(chars)
    return "".join(chars)


def password_strength(password: str) -> str:
    """Classify a password as ``weak``, ``medium`` or ``strong``."""
    password = password or ""
    if (
        len(password) >= 12
        and re.search(r"[A-Z]", password)
        and re.search(r"[a-z]", password)
        and re.search(r"\d", password)
    ):
        return "strong"
    if len(password) >= 8:
        return "medium"
    return "weak"
