"""
Status Reconciler
Directory models referenced by workflow records.

Models:
    - Company, Employee, Vendor, Uniform: reference entities.
    - ProductVendor: which vendor supplies which uniform.
    - VendorInventory: vendor stock line for a uniform.

Join records hold bare string ids, so they can dangle after a vendor or
uniform is removed; the cascade auditor reports those.
"""

from status_reconciler.models import db
from status_reconciler.models.base import TimestampedModel, _iso, _uuid


class Company(TimestampedModel):
    __tablename__ = "companies"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Employee(TimestampedModel):
    __tablename__ = "employees"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    company_id = db.Column(db.String(36), nullable=True)
    name = db.Column(db.String(200), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "company_id": self.company_id, "name": self.name}


class Vendor(TimestampedModel):
    __tablename__ = "vendors"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Uniform(TimestampedModel):
    __tablename__ = "uniforms"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    sku = db.Column(db.String(50), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "sku": self.sku}


class ProductVendor(TimestampedModel):
    """Vendor ↔ uniform supply link."""

    __tablename__ = "product_vendors"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    vendor_id = db.Column(db.String(36), nullable=True)
    uniform_id = db.Column(db.String(36), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "uniform_id": self.uniform_id,
            "created_at": _iso(self.created_at),
        }


class VendorInventory(TimestampedModel):
    """Stock level of a uniform held by a vendor."""

    __tablename__ = "vendor_inventories"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    vendor_id = db.Column(db.String(36), nullable=True)
    uniform_id = db.Column(db.String(36), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "uniform_id": self.uniform_id,
            "quantity": self.quantity,
            "created_at": _iso(self.created_at),
        }
