"""Password hashing (Argon2id) and the password strength policy."""

import re
from dataclasses import dataclass, field

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from citizen_auth.services.errors import WeakPasswordError

# Argon2 password hasher with recommended parameters
# Memory: 64 MiB, Time: 3 iterations, Parallelism: 4
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

_SPECIAL_CHARS = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?~`]")
_FULL_COMBINATION = re.compile(r"(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*])")

COMMON_PASSWORDS = frozenset(
    {
        "password", "123456", "123456789", "qwerty", "abc123", "password123",
        "admin", "letmein", "welcome", "monkey", "1234567890", "password1",
        "qwerty123", "admin123", "root", "user", "guest", "test", "demo",
        "ceylon", "srilanka", "colombo", "kandy", "galle", "jaffna",
    }
)  # fmt: skip


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash using constant-time comparison.

    Returns False for a mismatch and for a hash that cannot be parsed.
    """
    if not password or not password_hash:
        return False
    try:
        ph.verify(password_hash, password)
        return True
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def needs_rehash(password_hash: str) -> bool:
    """True when the stored hash was produced with outdated parameters."""
    try:
        return ph.check_needs_rehash(password_hash)
    except InvalidHashError:
        return True


@dataclass
class PasswordStrength:
    """Outcome of scoring a candidate password."""

    score: int = 0
    strength: str = "very-weak"
    requirements: dict[str, bool] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def is_acceptable(self, min_score: int) -> bool:
        required = ("length", "lowercase", "uppercase", "numbers")
        return self.score >= min_score and all(self.requirements.get(r) for r in required)


def evaluate_password_strength(password: str) -> PasswordStrength:
    """Score a password: one point per satisfied rule plus two bonuses."""
    result = PasswordStrength(
        requirements={
            "length": False,
            "lowercase": False,
            "uppercase": False,
            "numbers": False,
            "specialChars": False,
            "noCommonPasswords": False,
        }
    )
    if not password:
        result.errors.append("Password is required")
        return result

    if MIN_PASSWORD_LENGTH <= len(password) <= MAX_PASSWORD_LENGTH:
        result.requirements["length"] = True
        result.score += 1
    elif len(password) < MIN_PASSWORD_LENGTH:
        result.errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    else:
        result.errors.append(f"Password must be at most {MAX_PASSWORD_LENGTH} characters long")

    checks = [
        ("lowercase", re.search(r"[a-z]", password), "Add a lowercase letter"),
        ("uppercase", re.search(r"[A-Z]", password), "Add an uppercase letter"),
        ("numbers", re.search(r"\d", password), "Add a number"),
        ("specialChars", _SPECIAL_CHARS.search(password), "Add a special character"),
        (
            "noCommonPasswords",
            password.lower() not in COMMON_PASSWORDS,
            "Avoid commonly used passwords",
        ),
    ]
    for name, passed, hint in checks:
        if passed:
            result.requirements[name] = True
            result.score += 1
        else:
            result.errors.append(hint)

    if len(password) >= 12:
        result.score += 1
    if _FULL_COMBINATION.search(password):
        result.score += 1

    if result.score >= 6:
        result.strength = "very-strong"
    elif result.score >= 5:
        result.strength = "strong"
    elif result.score >= 3:
        result.strength = "medium"
    elif result.score >= 1:
        result.strength = "weak"
    return result


def ensure_password_strength(password: str, min_score: int) -> PasswordStrength:
    """Raise WeakPasswordError unless the password satisfies the policy."""
    result = evaluate_password_strength(password)
    if not result.is_acceptable(min_score):
        raise WeakPasswordError(
            f"Password is too weak ({result.strength})",
            suggestions=result.errors,
            score=result.score,
        )
    return result
