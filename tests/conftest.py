"""
Pytest fixtures for the construction ledger test suite.

Provides:
- A database engine and schema created once per session
- Per-test sessions isolated by an outer transaction that is rolled back
- A small construction chart of accounts
- Service fixtures wired the way build_ledger_api wires them

Environment Variables:
- DATABASE_URL: database to run against.  Defaults to an in-memory SQLite
  database; set a PostgreSQL URL to exercise row locks for real.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from ledger_config import LedgerConfig
from ledger_ingestion.services.import_service import ImportReconciler
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.dtos import LineSpec, VoucherHeader
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.reversal_service import ReversalEngine
from ledger_kernel.services.voucher_state_machine import VoucherStateMachine
from ledger_modules._orm_registry import import_all_orm_models
from ledger_modules.purchases.orm import (
    ProductModel,
    PurchaseLineModel,
    PurchaseModel,
    VendorModel,
)
from ledger_modules.purchases.service import PurchaseVoucherBuilder
from ledger_services import AuthContext, build_ledger_api

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, state_machine):
            state_machine.post(...)
            assert any(r["message"] == "voucher_posted" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Session-scoped DB infrastructure (engine + tables created ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create the full schema once; immutability listeners stay registered."""
    import_all_orm_models()
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """
    Per-test session joined to an outer transaction.

    ``session.commit()`` inside a test only releases a savepoint.  The outer
    transaction is rolled back at teardown, undoing everything the test
    wrote.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def company_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_company_id() -> UUID:
    return uuid4()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


# =============================================================================
# Chart of accounts
# =============================================================================


@pytest.fixture
def create_account(session: Session, company_id: UUID, test_actor_id: UUID):
    """Factory fixture to create accounts in the test company."""

    def _create_account(
        code: str,
        name: str,
        account_type: AccountType = AccountType.ASSET,
        parent: Account | None = None,
        is_active: bool = True,
        company: UUID | None = None,
    ) -> Account:
        account = Account(
            company_id=company or company_id,
            code=code,
            name=name,
            account_type=account_type.value,
            parent_id=parent.id if parent is not None else None,
            is_active=is_active,
            created_by_id=test_actor_id,
        )
        session.add(account)
        session.flush()
        return account

    return _create_account


@pytest.fixture
def chart(create_account):
    """
    A small construction chart.

    1000 Current Assets and 5000 Project Costs are grouping accounts; the
    rest are leaves.
    """
    current_assets = create_account("1000", "Current Assets", AccountType.ASSET)
    project_costs = create_account("5000", "Project Costs", AccountType.EXPENSE)
    return {
        "current_assets": current_assets,
        "cash": create_account("1010", "Cash", AccountType.ASSET, parent=current_assets),
        "bank": create_account("1020", "Bank", AccountType.ASSET, parent=current_assets),
        "inventory": create_account("1200", "Inventory", AccountType.ASSET, parent=current_assets),
        "ap": create_account("2010", "Accounts Payable", AccountType.LIABILITY),
        "revenue": create_account("4010", "Contract Revenue", AccountType.INCOME),
        "project_costs": project_costs,
        "materials": create_account("5010", "Direct Materials", AccountType.EXPENSE, parent=project_costs),
        "office": create_account("6010", "Office Expense", AccountType.EXPENSE),
    }


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def auditor_service(session: Session, deterministic_clock):
    return AuditorService(session, deterministic_clock)


@pytest.fixture
def state_machine(session: Session, deterministic_clock, auditor_service) -> VoucherStateMachine:
    return VoucherStateMachine(session, deterministic_clock, auditor=auditor_service)


@pytest.fixture
def approval_state_machine(session: Session, deterministic_clock, auditor_service) -> VoucherStateMachine:
    return VoucherStateMachine(
        session,
        deterministic_clock,
        auditor=auditor_service,
        require_approval=True,
    )


@pytest.fixture
def reversal_engine(session: Session, state_machine, deterministic_clock) -> ReversalEngine:
    return ReversalEngine(session, state_machine, deterministic_clock)


@pytest.fixture
def purchase_builder(session: Session, state_machine) -> PurchaseVoucherBuilder:
    return PurchaseVoucherBuilder(session, state_machine)


@pytest.fixture
def import_reconciler(session: Session, state_machine) -> ImportReconciler:
    return ImportReconciler(session, state_machine)


@pytest.fixture
def ledger_config() -> LedgerConfig:
    return LedgerConfig(config_id="test", version=1)


@pytest.fixture
def ledger_api(session: Session, ledger_config, deterministic_clock):
    return build_ledger_api(session, ledger_config, deterministic_clock)


@pytest.fixture
def accountant(company_id: UUID, test_actor_id: UUID) -> AuthContext:
    return AuthContext(user_id=test_actor_id, company_id=company_id, role="ACCOUNTANT")


# =============================================================================
# Data helpers
# =============================================================================


@pytest.fixture
def make_voucher(state_machine, company_id: UUID, test_actor_id: UUID):
    """
    Factory fixture creating DRAFT vouchers.

    ``lines`` is a list of ``(account, debit, credit)`` tuples.
    """

    def _make(
        lines,
        voucher_date: date = date(2024, 1, 15),
        voucher_type: str = "JOURNAL",
        narration: str | None = None,
        voucher_no: str | None = None,
        machine: VoucherStateMachine | None = None,
    ):
        header = VoucherHeader(
            company_id=company_id,
            voucher_date=voucher_date,
            voucher_type=voucher_type,
            narration=narration,
            voucher_no=voucher_no,
        )
        specs = [
            LineSpec(account_id=account.id, debit=Decimal(str(debit)), credit=Decimal(str(credit)))
            for account, debit, credit in lines
        ]
        return (machine or state_machine).create_draft(header, specs, test_actor_id)

    return _make


@pytest.fixture
def create_vendor(session: Session, company_id: UUID, test_actor_id: UUID):
    def _create(name: str = "Acme Steel") -> VendorModel:
        vendor = VendorModel(company_id=company_id, name=name, created_by_id=test_actor_id)
        session.add(vendor)
        session.flush()
        return vendor

    return _create


@pytest.fixture
def create_product(session: Session, company_id: UUID, test_actor_id: UUID):
    def _create(name: str, unit: str = "pcs", inventory_account: Account | None = None) -> ProductModel:
        product = ProductModel(
            company_id=company_id,
            name=name,
            unit=unit,
            inventory_account_id=inventory_account.id if inventory_account is not None else None,
            created_by_id=test_actor_id,
        )
        session.add(product)
        session.flush()
        return product

    return _create


@pytest.fixture
def create_purchase(session: Session, company_id: UUID, test_actor_id: UUID, create_vendor):
    """
    Factory fixture creating purchases.

    ``lines`` is a list of ``(product_or_None, quantity, unit_price)`` tuples;
    line totals are quantity * unit_price.
    """

    def _create(
        lines,
        *,
        paid: str = "0",
        due: str = "0",
        discount_percent: str | None = None,
        payment_account: Account | None = None,
        vendor: VendorModel | None = None,
        challan_no: str | None = "CH-001",
        reference: str | None = None,
        purchase_date: date = date(2024, 1, 10),
        project_id: UUID | None = None,
    ) -> PurchaseModel:
        purchase = PurchaseModel(
            company_id=company_id,
            purchase_date=purchase_date,
            challan_no=challan_no,
            reference=reference,
            project_id=project_id,
            supplier_vendor_id=(vendor or create_vendor()).id,
            discount_percent=Decimal(discount_percent) if discount_percent is not None else None,
            paid_amount=Decimal(paid),
            due_amount=Decimal(due),
            payment_account_id=payment_account.id if payment_account is not None else None,
            created_by_id=test_actor_id,
        )
        for n, (product, quantity, unit_price) in enumerate(lines, start=1):
            quantity = Decimal(str(quantity))
            unit_price = Decimal(str(unit_price))
            purchase.lines.append(
                PurchaseLineModel(
                    line_no=n,
                    product_id=product.id if product is not None else None,
                    description=None if product is not None else "Site labour",
                    line_kind="MATERIAL" if product is not None else "SERVICE",
                    quantity=quantity,
                    unit_price=unit_price,
                    line_total=quantity * unit_price,
                    created_by_id=test_actor_id,
                )
            )
        session.add(purchase)
        session.flush()
        session.expire(purchase, ["lines", "supplier_vendor"])
        return purchase

    return _create
