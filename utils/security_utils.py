"""
Account input validation for signup
"""
import re

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

MIN_PASSWORD_LENGTH = 12

# (pattern that must match, message when it does not)
PASSWORD_RULES = (
    (re.compile(r'[A-Z]'), "Password must contain at least one uppercase letter (A-Z)"),
    (re.compile(r'[a-z]'), "Password must contain at least one lowercase letter (a-z)"),
    (re.compile(r'[0-9]'), "Password must contain at least one digit (0-9)"),
    (re.compile(r'[!@#$%&*(),.?":{}|<>\[\]^]'), "Password must contain at least one special character (!@#$%^&*(),.?\":{}|<>[])"),
)


def validate_email(email: str) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def validate_password_strength(password: str) -> None:
    """
    Enforce the account password policy.

    Raises:
        ValueError: With the first rule the password breaks
    """
    if not password:
        raise ValueError("Password cannot be empty")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    for pattern, message in PASSWORD_RULES:
        if not pattern.search(password):
            raise ValueError(message)
