"""
Company (tenant) lookup and creation.

SECURITY INVARIANTS:
1. Exactly one company is flagged is_root (the operating business)
2. Slugs are unique and are what users type at login
3. Services never trust a company id from the client without resolving it
   here first
"""

import re

from ..extensions import db
from ..models import Company
from ..validation import ConflictError, ValidationError


SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,62}$")


class TenantAccessError(Exception):
    """Raised when a company is missing or deactivated."""
    pass


def get_company(company_id: int) -> Company | None:
    return db.session.get(Company, company_id)


def get_company_by_slug(slug: str) -> Company | None:
    return db.session.query(Company).filter_by(slug=(slug or "").strip().lower()).first()


def get_root_company() -> Company | None:
    return db.session.query(Company).filter_by(is_root=True).first()


def list_companies(*, active_only: bool = False) -> list[Company]:
    q = db.session.query(Company)
    if active_only:
        q = q.filter_by(is_active=True)
    return q.order_by(Company.id.asc()).all()


def validate_company_active(company_id: int) -> Company:
    """Raises TenantAccessError if the company is missing or inactive."""
    company = get_company(company_id)
    if not company:
        raise TenantAccessError("Company not found")
    if not company.is_active:
        raise TenantAccessError("Company is not active")
    return company


def create_company(*, name: str, slug: str, domain: str | None = None, is_root: bool = False) -> Company:
    """
    Create a company.

    Raises ValidationError for a bad name/slug and ConflictError for a
    duplicate slug or a second root company.
    """
    name = (name or "").strip()
    slug = (slug or "").strip().lower()
    if not name:
        raise ValidationError("name is required")
    if not SLUG_RE.match(slug):
        raise ValidationError("slug must be 2-63 chars of lowercase letters, digits or '-'")

    if get_company_by_slug(slug):
        raise ConflictError(f"Company slug '{slug}' already exists")
    if is_root and get_root_company():
        raise ConflictError("A root company already exists")

    company = Company(
        name=name,
        slug=slug,
        domain=(domain or "").strip().lower() or None,
        is_root=is_root,
        is_active=True,
    )
    db.session.add(company)
    db.session.commit()
    return company
