"""initial_status_reconciler_schema

Creates the workflow, directory and migration-log tables:
  - orders, purchase_orders, shipments, grns, invoices
      legacy status + unified status + *_updated_at / *_updated_by
  - companies, employees, vendors, uniforms, product_vendors, vendor_inventories
  - status_migration_logs (append-only, six lookup indexes)

Linkage columns are plain strings without foreign-key constraints so that
orphaned references remain representable and auditable.

Tables created conditionally so the revision can be applied to databases
that already received them via db.create_all().

Revision ID: 5e1d2c3b4a01
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '5e1d2c3b4a01'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _unified(prefix):
    return [
        sa.Column(prefix, sa.String(length=40), nullable=True),
        sa.Column(f"{prefix}_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(f"{prefix}_updated_by", sa.String(length=100), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Directory ─────────────────────────────────────────────────────────
    for table in ("companies", "vendors"):
        if table not in existing:
            op.create_table(
                table,
                sa.Column("id", sa.String(length=36), nullable=False),
                sa.Column("name", sa.String(length=200), nullable=False),
                *_timestamps(),
                sa.PrimaryKeyConstraint("id"),
            )

    if "employees" not in existing:
        op.create_table(
            "employees",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("company_id", sa.String(length=36), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    if "uniforms" not in existing:
        op.create_table(
            "uniforms",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("sku", sa.String(length=50), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    if "product_vendors" not in existing:
        op.create_table(
            "product_vendors",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("vendor_id", sa.String(length=36), nullable=True),
            sa.Column("uniform_id", sa.String(length=36), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    if "vendor_inventories" not in existing:
        op.create_table(
            "vendor_inventories",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("vendor_id", sa.String(length=36), nullable=True),
            sa.Column("uniform_id", sa.String(length=36), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )

    # ── Workflow ──────────────────────────────────────────────────────────
    if "orders" not in existing:
        op.create_table(
            "orders",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("order_number", sa.String(length=50), nullable=True),
            sa.Column("employee_id", sa.String(length=36), nullable=True),
            sa.Column("company_id", sa.String(length=36), nullable=True),
            sa.Column("vendor_id", sa.String(length=36), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=True, comment="Legacy order status"),
            *_unified("unified_status"),
            sa.Column("pr_number", sa.String(length=50), nullable=True),
            sa.Column("pr_status", sa.String(length=50), nullable=True, comment="Legacy PR status"),
            *_unified("unified_pr_status"),
            sa.Column("po_number", sa.String(length=50), nullable=True),
            sa.Column("dispatch_status", sa.String(length=30), nullable=True,
                      comment="AWAITING_FULFILMENT | SHIPPED"),
            sa.Column("delivery_status", sa.String(length=30), nullable=True,
                      comment="NOT_DELIVERED | PARTIALLY_DELIVERED | DELIVERED"),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_orders_pr_number", "orders", ["pr_number"])
        op.create_index("idx_orders_po_number", "orders", ["po_number"])
        op.create_index("idx_orders_company", "orders", ["company_id"])

    if "purchase_orders" not in existing:
        op.create_table(
            "purchase_orders",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("client_po_number", sa.String(length=50), nullable=True),
            sa.Column("company_id", sa.String(length=36), nullable=True),
            sa.Column("vendor_id", sa.String(length=36), nullable=True),
            sa.Column("po_status", sa.String(length=50), nullable=True, comment="Legacy PO status"),
            *_unified("unified_po_status"),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_po_client_number", "purchase_orders", ["client_po_number"])

    if "shipments" not in existing:
        op.create_table(
            "shipments",
            sa.Column("shipment_id", sa.String(length=50), nullable=False),
            sa.Column("pr_number", sa.String(length=50), nullable=True),
            sa.Column("vendor_id", sa.String(length=36), nullable=True),
            sa.Column("courier_status", sa.String(length=50), nullable=True),
            sa.Column("shipment_status", sa.String(length=50), nullable=True,
                      comment="Legacy shipment status"),
            *_unified("unified_shipment_status"),
            *_timestamps(),
            sa.PrimaryKeyConstraint("shipment_id"),
        )
        op.create_index("idx_shipments_pr_number", "shipments", ["pr_number"])

    if "grns" not in existing:
        op.create_table(
            "grns",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("grn_number", sa.String(length=50), nullable=True),
            sa.Column("po_number", sa.String(length=50), nullable=True),
            sa.Column("vendor_id", sa.String(length=36), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=True, comment="Older legacy GRN status"),
            sa.Column("grn_status", sa.String(length=50), nullable=True, comment="Legacy approval status"),
            *_unified("unified_grn_status"),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_grns_po_number", "grns", ["po_number"])

    if "invoices" not in existing:
        op.create_table(
            "invoices",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("invoice_number", sa.String(length=50), nullable=True),
            sa.Column("grn_id", sa.String(length=36), nullable=True),
            sa.Column("grn_number", sa.String(length=50), nullable=True),
            sa.Column("vendor_id", sa.String(length=36), nullable=True),
            sa.Column("invoice_status", sa.String(length=50), nullable=True,
                      comment="Legacy invoice status"),
            *_unified("unified_invoice_status"),
            *_timestamps(),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_invoices_grn_id", "invoices", ["grn_id"])

    # ── Migration log ─────────────────────────────────────────────────────
    if "status_migration_logs" not in existing:
        op.create_table(
            "status_migration_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=20), nullable=False,
                      comment="Order | PR | PO | Shipment | GRN | Invoice"),
            sa.Column("entity_id", sa.String(length=50), nullable=False),
            sa.Column("action", sa.String(length=30), nullable=False),
            sa.Column("previous_legacy_status", sa.String(length=120), nullable=True),
            sa.Column("new_legacy_status", sa.String(length=120), nullable=True),
            sa.Column("previous_unified_status", sa.String(length=40), nullable=True),
            sa.Column("new_unified_status", sa.String(length=40), nullable=True),
            sa.Column("source", sa.String(length=100), nullable=False,
                      comment="Job or code path that wrote the change"),
            sa.Column("updated_by", sa.String(length=100), nullable=False),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.Column("metadata", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_sml_entity", "status_migration_logs", ["entity_type", "entity_id"])
        op.create_index("idx_sml_entity_ts", "status_migration_logs", ["entity_type", "timestamp"])
        op.create_index("idx_sml_action_ts", "status_migration_logs", ["action", "timestamp"])
        op.create_index("idx_sml_source", "status_migration_logs", ["source"])
        op.create_index("idx_sml_ts", "status_migration_logs", ["timestamp"])
        op.create_index("idx_sml_updated_by_ts", "status_migration_logs", ["updated_by", "timestamp"])


def downgrade():
    for table in (
        "status_migration_logs",
        "invoices", "grns", "shipments", "purchase_orders", "orders",
        "vendor_inventories", "product_vendors", "uniforms", "employees", "vendors", "companies",
    ):
        op.drop_table(table)
