"""Password rules for kitchen-staff accounts.

The backend applies the same rules; checking them locally lets the staff
editor reject a weak password before any request is made.
"""

import re
from typing import Optional, Tuple

COMMON_PASSWORDS = frozenset(
    {
        "123456", "12345678", "123456789", "password", "qwerty", "abc123",
        "111111", "123123", "admin", "letmein", "iloveyou", "000000",
        "passw0rd", "password1", "12345", "11111111", "qwerty123",
        "admin123", "welcome", "iloveyou1",
    }
)

_SEQUENCES = ("abcdefghijklmnopqrstuvwxyz", "0123456789")
_REPEATED = re.compile(r"(.)\1\1\1")

MIN_LENGTH = 12
# bcrypt silently truncates past 72 bytes
MAX_LENGTH = 72


def is_common_password(password: str) -> bool:
    return password.lower() in COMMON_PASSWORDS


def has_sequential_pattern(password: str) -> bool:
    """True when the password contains four consecutive letters or digits."""
    lowered = password.lower()
    for seq in _SEQUENCES:
        for i in range(len(seq) - 3):
            if seq[i:i + 4] in lowered:
                return True
    return False


def has_repeated_chars(password: str) -> bool:
    return bool(_REPEATED.search(password))


def _email_parts(email: str) -> Tuple[str, str, str]:
    full = (email or "").lower().strip()
    user, _, domain = full.partition("@")
    return full, user, domain.split(".")[0]


def validate_password_strong(password: str, email: str = "") -> Optional[str]:
    """Return the first rule the password breaks, or None when it is acceptable."""
    if not password:
        return "Password is required."
    if len(password) < MIN_LENGTH:
        return f"Password must be at least {MIN_LENGTH} characters long."
    if len(password) > MAX_LENGTH:
        return f"Password cannot be longer than {MAX_LENGTH} characters."
    if re.search(r"\s", password):
        return "Password cannot contain spaces."

    has_lower = re.search(r"[a-z]", password)
    has_upper = re.search(r"[A-Z]", password)
    has_digit = re.search(r"[0-9]", password)
    has_symbol = re.search(r"[^A-Za-z0-9]", password)
    if not (has_lower and has_upper and has_digit and has_symbol):
        return "Password must include upper case, lower case, a digit and a symbol."

    if is_common_password(password):
        return "That password is too common."
    if has_sequential_pattern(password):
        return "Avoid obvious sequences (abcd, 1234, ...)."
    if has_repeated_chars(password):
        return "Avoid repeating the same character (aaaa)."

    full, user, domain = _email_parts(email)
    lowered = password.lower()
    if full and full in lowered:
        return "Do not use the email address inside the password."
    if len(user) >= 4 and user in lowered:
        return "Do not include the email user name inside the password."
    if len(domain) >= 4 and domain in lowered:
        return "Do not include the email domain inside the password."

    return None


def score_password(password: str, email: str = "") -> Tuple[int, str]:
    """Score a password from 0 to 100 and label it for the strength meter."""
    if not password:
        return 0, "Empty"

    score = 0
    if len(password) >= 12:
        score += 25
    if len(password) >= 16:
        score += 10
    for pattern in (r"[a-z]", r"[A-Z]", r"[0-9]", r"[^A-Za-z0-9]"):
        if re.search(pattern, password):
            score += 15

    if re.search(r"\s", password):
        score -= 30
    if is_common_password(password):
        score = 0
    if has_sequential_pattern(password):
        score -= 15
    if has_repeated_chars(password):
        score -= 10

    if validate_password_strong(password, email):
        score = min(score, 55)

    score = max(0, min(100, score))
    if score >= 85:
        label = "Very strong"
    elif score >= 70:
        label = "Strong"
    elif score >= 45:
        label = "Medium"
    else:
        label = "Weak"
    return score, label
