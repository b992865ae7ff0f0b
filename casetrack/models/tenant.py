"""
Tenant directory models — tenants, users, clients.

Provisioning and CRUD for these tables live outside this service; the
action workflow only reads them to resolve names, document ids and the
tenant display name that roots every storage path.
"""

from datetime import datetime, timezone

from casetrack.models import db
from casetrack.models.base import TenantModel


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), unique=True, nullable=True)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(TenantModel):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "full_name": self.full_name,
            "email": self.email,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.full_name}>"


# ═══════════════════════════════════════════════════════════════
# 3. CLIENTS
# ═══════════════════════════════════════════════════════════════
class Client(TenantModel):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    document_id = db.Column(db.String(20), comment="CPF / CNPJ")
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "document_id": self.document_id,
        }

    def __repr__(self):
        return f"<Client {self.id}: {self.name}>"
