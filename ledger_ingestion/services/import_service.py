"""
Import service: rows -> voucher candidates -> DRAFT vouchers.

Two steps, each its own call:

    parse   Group rows into candidates, resolve account tokens once per
            distinct token, validate each candidate on its own.  Never
            raises for a bad row; problems are attached to the candidate.
    commit  Refuse the batch if any candidate carries errors.  Otherwise
            create each candidate as a DRAFT voucher in its own savepoint,
            recording persistence failures per candidate.

Uses structured logging (LogContext, get_logger("ingestion.*")).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.balance import BalanceValidator
from ledger_kernel.domain.dtos import LineSpec, VoucherHeader
from ledger_kernel.exceptions import (
    ImportBatchRejectedError,
    ImportRowError,
    LedgerError,
    VoucherValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.voucher import VoucherType
from ledger_kernel.selectors.account_selector import AccountDTO
from ledger_kernel.services.voucher_state_machine import VoucherStateMachine

from ledger_ingestion.domain.classification import (
    AccountTokenClassifier,
    RegexTokenClassifier,
    TokenKind,
)
from ledger_ingestion.domain.parsers import (
    Row,
    cell_text,
    group_rows_into_vouchers,
    parse_date,
    parse_number,
    parse_voucher_type,
)
from ledger_ingestion.domain.types import (
    CommitError,
    CommitResult,
    GroupHeader,
    GroupLine,
    GroupTotals,
    ImportIssue,
    ImportOptions,
    ParseResult,
    UnresolvedAccount,
    VoucherGroup,
)
from ledger_ingestion.services.account_resolver import AccountResolver, SelectorAccountResolver

logger = get_logger("ingestion.import_service")


class ImportReconciler:
    """
    Parses and commits voucher imports for one company at a time.

    Contract:
        ``parse`` is read-only.  ``commit`` flushes DRAFT vouchers through
        ``VoucherStateMachine.create_draft`` and never commits the outer
        transaction.
    """

    def __init__(
        self,
        session: Session,
        state_machine: VoucherStateMachine,
        *,
        classifier: AccountTokenClassifier | None = None,
        resolver: AccountResolver | None = None,
        balance_validator: BalanceValidator | None = None,
        min_lines: int = 2,
    ):
        self._session = session
        self._machine = state_machine
        self._classifier = classifier or RegexTokenClassifier()
        self._resolver = resolver or SelectorAccountResolver(session)
        self._validator = balance_validator or state_machine.balance_validator
        self._min_lines = min_lines

    # ------------------------------------------------------------------
    # Parse
    # ------------------------------------------------------------------

    def _resolve_tokens(
        self,
        rows: Sequence[Row],
        options: ImportOptions,
        company_id: UUID,
    ) -> dict[str, AccountDTO | None]:
        cache: dict[str, AccountDTO | None] = {}
        for row in rows:
            token = cell_text(row, options.account_column)
            if token is None or token in cache:
                continue
            cache[token] = self._resolver.resolve(company_id, token, self._classifier.classify(token))
        return cache

    @staticmethod
    def _header(first_row: Row, options: ImportOptions) -> tuple[GroupHeader, list[str], list[str]]:
        errors: list[str] = []
        warnings: list[str] = []

        raw_date = first_row.get(options.date_column)
        voucher_date = parse_date(raw_date)
        if voucher_date is None:
            errors.append(f"Invalid date: {raw_date}")

        fallback_type = parse_voucher_type(options.constant_type) or VoucherType.JOURNAL.value
        voucher_type = fallback_type
        raw_type = cell_text(first_row, options.type_column)
        if raw_type is not None:
            parsed = parse_voucher_type(raw_type)
            if parsed is None:
                warnings.append(f"Unknown voucher type: {raw_type}, using {fallback_type}")
            else:
                voucher_type = parsed

        header = GroupHeader(
            voucher_date=voucher_date,
            voucher_type=voucher_type,
            reference_no=cell_text(first_row, options.reference_no_column) or options.constant_reference_no,
            narration=cell_text(first_row, options.narration_column),
            vendor=cell_text(first_row, options.vendor_column),
        )
        return header, errors, warnings

    @staticmethod
    def _row_amounts(key: str, index: int, row: Row, options: ImportOptions) -> tuple[Any, Any]:
        """Parsed (debit, credit) of one row; raises ImportRowError on a bad shape."""
        n = index + 1
        debit = parse_number(row.get(options.debit_column))
        credit = parse_number(row.get(options.credit_column))
        if debit is None:
            raise ImportRowError(f"Row {n}: Invalid debit amount: {row.get(options.debit_column)}", index, key)
        if credit is None:
            raise ImportRowError(f"Row {n}: Invalid credit amount: {row.get(options.credit_column)}", index, key)
        if debit < 0 or credit < 0:
            raise ImportRowError(f"Row {n}: Debit and credit cannot be negative", index, key)
        if debit > 0 and credit > 0:
            raise ImportRowError(f"Row {n}: Both debit and credit cannot be greater than 0", index, key)
        if debit == 0 and credit == 0:
            raise ImportRowError(f"Row {n}: Either debit or credit must be greater than 0", index, key)
        return debit, credit

    def _build_group(
        self,
        key: str,
        group_rows: list[tuple[int, Row]],
        options: ImportOptions,
        accounts: Mapping[str, AccountDTO | None],
        unresolved: dict[str, UnresolvedAccount],
    ) -> VoucherGroup:
        header, errors, warnings = self._header(group_rows[0][1], options)
        lines: list[GroupLine] = []

        for index, row in group_rows:
            row_errors: list[ImportRowError] = []
            try:
                debit, credit = self._row_amounts(key, index, row, options)
            except ImportRowError as exc:
                row_errors.append(exc)
                debit = credit = ZERO

            token = cell_text(row, options.account_column)
            account = None
            if token is None:
                row_errors.append(ImportRowError(f"Row {index + 1}: Account is required", index, key))
            else:
                account = accounts.get(token)
                if account is None:
                    row_errors.append(ImportRowError(f"Row {index + 1}: Account not found: {token}", index, key))
                    if token not in unresolved:
                        is_code = self._classifier.classify(token) == TokenKind.CODE
                        unresolved[token] = UnresolvedAccount(
                            row_index=index,
                            account_code=token if is_code else None,
                            account_name=None if is_code else token,
                        )

            if row_errors:
                errors.extend(str(e) for e in row_errors)
                continue

            lines.append(
                GroupLine(
                    account_id=account.id,
                    account_code=account.code,
                    account_name=account.name,
                    debit=debit,
                    credit=credit,
                    description=cell_text(row, options.line_memo_column),
                    row_index=index,
                )
            )

        check = self._validator.validate(lines)
        if not check.valid:
            errors.append(check.error)
        if len(lines) < self._min_lines:
            errors.append(f"Voucher must have at least {self._min_lines} lines")

        return VoucherGroup(
            key=key,
            header=header,
            lines=tuple(lines),
            totals=GroupTotals(
                debit=check.total_debit,
                credit=check.total_credit,
                difference=check.difference,
            ),
            errors=tuple(errors),
            warnings=tuple(warnings),
        )

    def parse(
        self,
        rows: Sequence[Row],
        options: ImportOptions,
        company_id: UUID,
    ) -> ParseResult:
        """
        Group, resolve and validate.

        Raises VoucherValidationError only when a required column is not
        mapped; every row-level problem ends up on its candidate.
        """
        missing = options.missing_required()
        if missing:
            raise VoucherValidationError(missing)

        with LogContext.bind(company_id=company_id):
            accounts = self._resolve_tokens(rows, options, company_id)
            unresolved: dict[str, UnresolvedAccount] = {}
            vouchers: list[VoucherGroup] = []
            errors: list[ImportIssue] = []
            warnings: list[ImportIssue] = []

            for key, group_rows in group_rows_into_vouchers(rows, options).items():
                group = self._build_group(key, group_rows, options, accounts, unresolved)
                vouchers.append(group)
                errors.extend(ImportIssue(key, m) for m in group.errors)
                warnings.extend(ImportIssue(key, m) for m in group.warnings)

            result = ParseResult(
                vouchers=tuple(vouchers),
                total_rows=len(rows),
                errors=tuple(errors),
                warnings=tuple(warnings),
                unresolved_accounts=tuple(unresolved.values()),
            )
            logger.info(
                "import_parsed",
                extra={
                    "total_rows": result.total_rows,
                    "total_vouchers": result.total_vouchers,
                    "invalid_vouchers": result.total_vouchers - len(result.valid_vouchers),
                    "distinct_accounts": len(accounts),
                    "unresolved_accounts": len(unresolved),
                },
            )
            return result

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _commit_one(self, candidate: VoucherGroup, company_id: UUID, actor_id: UUID) -> UUID:
        header = candidate.header
        if header.voucher_date is None:
            raise ImportRowError("Invalid date", voucher_key=candidate.key)

        # Allocated outside the savepoint: a failed candidate burns its number.
        voucher_no = self._machine.allocate_number(company_id, header.voucher_date)
        with self._session.begin_nested():
            voucher = self._machine.create_draft(
                VoucherHeader(
                    company_id=company_id,
                    voucher_date=header.voucher_date,
                    voucher_type=header.voucher_type or VoucherType.JOURNAL.value,
                    narration=header.narration,
                    reference_no=header.reference_no,
                    voucher_no=voucher_no,
                ),
                [
                    LineSpec(
                        account_id=line.account_id,
                        debit=line.debit,
                        credit=line.credit,
                        description=line.description,
                    )
                    for line in candidate.lines
                ],
                actor_id,
            )
        return voucher.id

    def commit(
        self,
        vouchers: Sequence[VoucherGroup | Mapping[str, Any]],
        company_id: UUID,
        actor_id: UUID,
        *,
        post: bool = False,
    ) -> CommitResult:
        """
        Create every candidate as a DRAFT voucher.

        Raises ImportBatchRejectedError, before writing anything, when any
        candidate carries validation errors.  After that the batch is not
        atomic: each candidate succeeds or fails on its own.  With
        ``post=True`` the imported vouchers are then posted one by one.
        """
        candidates = [v if isinstance(v, VoucherGroup) else VoucherGroup.from_mapping(v) for v in vouchers]
        if not candidates:
            raise VoucherValidationError(["No vouchers provided"])

        invalid = [c.key for c in candidates if c.errors]
        if invalid:
            logger.warning(
                "import_batch_rejected",
                extra={"invalid_count": len(invalid), "voucher_keys": invalid[:20]},
            )
            raise ImportBatchRejectedError(len(invalid), invalid)

        batch_id = uuid4()
        voucher_ids: list[UUID] = []
        failures: list[CommitError] = []

        with LogContext.bind(batch_id=batch_id, company_id=company_id, actor_id=actor_id):
            for candidate in candidates:
                try:
                    voucher_ids.append(self._commit_one(candidate, company_id, actor_id))
                except LedgerError as exc:
                    failures.append(CommitError(candidate.key, str(exc), exc.code))
                    logger.warning(
                        "import_candidate_failed",
                        extra={"voucher_key": candidate.key, "error_code": exc.code},
                    )
                except (IntegrityError, DataError) as exc:
                    failures.append(CommitError(candidate.key, str(exc.orig), "PERSISTENCE_ERROR"))
                    logger.warning(
                        "import_candidate_failed",
                        extra={"voucher_key": candidate.key, "error_code": "PERSISTENCE_ERROR"},
                    )

            posted = None
            if post and voucher_ids:
                posted = self._machine.post_many(voucher_ids, company_id, actor_id)

            logger.info(
                "import_committed",
                extra={
                    "imported": len(voucher_ids),
                    "skipped": len(failures),
                    "posted": len(posted.posted) if posted is not None else 0,
                },
            )

        return CommitResult(
            imported=len(voucher_ids),
            skipped=len(failures),
            errors=tuple(failures),
            voucher_ids=tuple(voucher_ids),
            posted=posted,
        )
