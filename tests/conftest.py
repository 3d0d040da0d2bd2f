"""
Shared pytest fixtures for the Status Reconciler test suite.

Provides:
    - app: Flask application (session-scoped), reports/backups in a tmp dir
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - flags / dual_write_flags: parsed rollout flags
    - make_*: record factories that commit, so batch jobs see the rows
"""

import pytest

from status_reconciler import create_app
from status_reconciler.models import db as _db
from status_reconciler.models.directory import (
    Company,
    Employee,
    ProductVendor,
    Uniform,
    Vendor,
)
from status_reconciler.models.workflow import (
    GoodsReceiptNote,
    Invoice,
    Order,
    PurchaseOrder,
    Shipment,
)
from status_reconciler.rollout import RolloutFlags


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["REPORTS_DIR"] = str(tmp_path_factory.mktemp("reports"))
    application.config["BACKUPS_DIR"] = str(tmp_path_factory.mktemp("backups"))
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def flags():
    """Initial rollout state: legacy only, safe mode on."""
    return RolloutFlags()


@pytest.fixture()
def dual_write_flags():
    return RolloutFlags(dual_write_enabled=True)


# ── Record factories ─────────────────────────────────────────────────────


def _persist(obj):
    _db.session.add(obj)
    _db.session.commit()
    return obj


@pytest.fixture()
def make_order():
    def _make(**kw):
        return _persist(Order(**kw))
    return _make


@pytest.fixture()
def make_pr():
    """A PR is an Order row with pr_number set."""
    def _make(pr_number, pr_status="DRAFT", **kw):
        return _persist(Order(pr_number=pr_number, pr_status=pr_status, **kw))
    return _make


@pytest.fixture()
def make_po():
    def _make(client_po_number, po_status="CREATED", **kw):
        return _persist(PurchaseOrder(client_po_number=client_po_number, po_status=po_status, **kw))
    return _make


@pytest.fixture()
def make_shipment():
    def _make(shipment_id, pr_number, shipment_status="CREATED", **kw):
        return _persist(Shipment(shipment_id=shipment_id, pr_number=pr_number,
                                 shipment_status=shipment_status, **kw))
    return _make


@pytest.fixture()
def make_grn():
    def _make(grn_number, po_number, **kw):
        return _persist(GoodsReceiptNote(grn_number=grn_number, po_number=po_number, **kw))
    return _make


@pytest.fixture()
def make_invoice():
    def _make(invoice_number, grn_id, invoice_status="RAISED", **kw):
        return _persist(Invoice(invoice_number=invoice_number, grn_id=grn_id,
                                invoice_status=invoice_status, **kw))
    return _make


@pytest.fixture()
def make_directory():
    """Company, employee, vendor and uniform that orders can point at."""
    def _make():
        company = _persist(Company(name="Acme Hospitals"))
        employee = _persist(Employee(name="R. Patel", company_id=company.id))
        vendor = _persist(Vendor(name="Uniform Works"))
        uniform = _persist(Uniform(name="Scrub top", sku="SCR-TOP-M"))
        return {"company": company, "employee": employee, "vendor": vendor, "uniform": uniform}
    return _make


@pytest.fixture()
def make_link():
    """ProductVendor or VendorInventory row."""
    def _make(model=ProductVendor, **kw):
        return _persist(model(**kw))
    return _make
