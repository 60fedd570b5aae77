"""
Module ORM Registry (``ledger_modules._orm_registry``).

Responsibility
--------------
Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions before tables are
created.  The kernel's ``create_tables()`` only knows kernel models, so
``create_all_tables()`` is the way to get a complete schema.

Architecture position
---------------------
**Modules layer** -- utility.  Imports from sibling ``ledger_modules``
packages and from ``ledger_kernel.db.engine`` (allowed: modules -> kernel).
MUST NOT be imported by ``ledger_kernel``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``ledger_modules.*.orm`` module.  Idempotent."""
    import ledger_kernel.models  # noqa: F401
    import ledger_modules.purchases.orm  # noqa: F401


def create_all_tables() -> None:
    """
    Create kernel + module tables.

    Preconditions:
        Engine must be initialized via ``init_engine_from_url()``.
    """
    from ledger_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables()
