"""
SequenceService -- sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing integers per named sequence.  A dedicated
    counter table is read with ``SELECT ... FOR UPDATE`` so concurrent
    allocations for the same name serialize on one row.  Aggregate
    max-plus-one queries are never used.

    VoucherNumberService builds voucher numbers on top of it, one counter
    per company and calendar month:

        voucher_no:{company_id}:{YYYYMM}  ->  V-202401-0001, V-202401-0002, ...

Architecture position:
    Kernel > Services.  Called by VoucherStateMachine.create_draft and by the
    import commit loop (which allocates numbers before opening each
    candidate's savepoint).

Failure modes:
    - IntegrityError on a concurrent first-use insert of the same counter is
      absorbed by a savepoint and the row is re-read under lock.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One named counter.  The row lock is what makes allocation safe."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Transactional sequence numbers.

    The increment becomes visible when the caller's transaction commits; a
    rollback of the enclosing transaction returns the value.  Never commits.
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None


class VoucherNumberService:
    """Allocates ``{prefix}-{YYYYMM}-{n}`` voucher numbers per company and month."""

    def __init__(self, session: Session, prefix: str = "V", width: int = 4):
        if width < 1:
            raise ValueError(f"Voucher number width must be at least 1, got {width}")
        self._sequences = SequenceService(session)
        self._prefix = prefix
        self._width = width

    @staticmethod
    def sequence_name(company_id: UUID, voucher_date: date) -> str:
        return f"voucher_no:{company_id}:{voucher_date:%Y%m}"

    def next_number(self, company_id: UUID, voucher_date: date) -> str:
        value = self._sequences.next_value(self.sequence_name(company_id, voucher_date))
        return f"{self._prefix}-{voucher_date:%Y%m}-{value:0{self._width}d}"
