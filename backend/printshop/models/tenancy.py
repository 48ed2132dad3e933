from __future__ import annotations

from ..extensions import db
from printshop.time_utils import to_utc_z


class Company(db.Model):
    """
    Multi-tenant root: every branded storefront is a Company.

    MULTI-TENANT: Users, orders and module grants belong to exactly one
    company. The single company flagged is_root is the operating business;
    it always has every module active and its superadmins bypass the
    permission matrix.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)
    domain = db.Column(db.String(255), nullable=True, unique=True)

    is_root = db.Column(db.Boolean, nullable=False, default=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} slug={self.slug!r} root={self.is_root}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "domain": self.domain,
            "is_root": self.is_root,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CompanyModule(db.Model):
    """
    Per-company activation of a feature module.

    A missing row means inactive. Rows are toggled by superadmins only;
    writes are idempotent (setting the same flag twice is a no-op).
    """
    __tablename__ = "company_modules"
    __table_args__ = (
        db.UniqueConstraint("company_id", "module", name="uq_company_modules_company_module"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    module = db.Column(db.String(32), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    company = db.relationship("Company", backref=db.backref("module_grants", lazy=True))

    def to_dict(self) -> dict:
        return {
            "company_id": self.company_id,
            "module": self.module,
            "is_active": self.is_active,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
