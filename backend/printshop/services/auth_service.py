# Overview: Password hashing, user creation and credential checks.

"""
Authentication Service with Multi-Tenant Support

WHY: Every stage move and inspection must be attributable to an operator.
Uses bcrypt for password hashing and validates password strength.

MULTI-TENANT: Users belong to exactly one company. Email uniqueness is
company-scoped, so login always happens against a company.
"""

import bcrypt
import re
from ..extensions import db
from ..models import User, Company
from ..permissions import parse_role
from printshop.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


PASSWORD_RULES = (
    (r".{8,}", "Password must be at least 8 characters long"),
    (r"[A-Z]", "Password must contain at least one uppercase letter"),
    (r"[a-z]", "Password must contain at least one lowercase letter"),
    (r"\d", "Password must contain at least one digit"),
    (r"[!@#$%^&*(),.'\":{}|<>]", "Password must contain at least one special character"),
)


def validate_password_strength(password: str) -> None:
    """Raise PasswordValidationError for the first rule the password breaks."""
    for pattern, message in PASSWORD_RULES:
        if not re.search(pattern, password or "", re.DOTALL):
            raise PasswordValidationError(message)


def hash_password(password: str, *, rounds: int = 12) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    *,
    company_id: int,
    email: str,
    name: str,
    password: str,
    role: str = "user",
    rounds: int = 12,
) -> User:
    """
    Create a user in a company.

    Raises ValueError for unknown company/role or a duplicate email,
    PasswordValidationError for weak passwords.
    """
    company = db.session.query(Company).filter_by(id=company_id).first()
    if not company:
        raise ValueError(f"Company {company_id} not found")

    role = parse_role(role)
    email = email.strip().lower()

    existing = db.session.query(User).filter_by(company_id=company_id, email=email).first()
    if existing:
        raise ValueError(f"User '{email}' already exists in company {company_id}")

    user = User(
        company_id=company_id,
        email=email,
        name=name.strip(),
        password_hash=hash_password(password, rounds=rounds),
        role=role.value,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(company_id: int, email: str, password: str) -> User | None:
    """
    Check credentials within a company.

    Returns the User on success, None on any failure (unknown user,
    wrong password, inactive user or company).
    """
    user = db.session.query(User).filter_by(
        company_id=company_id,
        email=(email or "").strip().lower(),
    ).first()

    if not user or not user.is_active:
        return None
    if not user.company or not user.company.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
