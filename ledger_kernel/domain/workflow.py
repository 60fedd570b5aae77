"""
Voucher lifecycle as a declarative workflow (``ledger_kernel.domain.workflow``).

Pure value objects.  ZERO I/O.  VoucherStateMachine consults the workflow
to decide which status an action may start from; it never hard-codes the
transition table.

Default lifecycle::

    DRAFT --submit--> SUBMITTED --approve--> APPROVED
    DRAFT --post----> POSTED --reverse--> REVERSED
    APPROVED --post-> POSTED

Approval is optional by default: a reviewed voucher posts from APPROVED.
With approval required, ``post`` starts only from APPROVED.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A named condition checked before a transition fires (descriptive only)."""

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """One allowed status change.  ``posts_entry`` marks the posting transition."""

    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    posts_entry: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references an unknown state"
                )

    def transition_for(self, state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == state and t.action == action:
                return t
        return None

    def sources_for(self, action: str) -> tuple[str, ...]:
        """States from which ``action`` may fire, in declaration order."""
        return tuple(t.from_state for t in self.transitions if t.action == action)


BALANCED_GUARD = Guard(
    name="balanced",
    description="Total debits equal total credits within tolerance, "
    "every line account active and a leaf",
)

_STATES = ("DRAFT", "SUBMITTED", "APPROVED", "POSTED", "REVERSED")

VOUCHER_WORKFLOW = Workflow(
    name="voucher",
    description="Voucher lifecycle with direct posting from DRAFT",
    initial_state="DRAFT",
    states=_STATES,
    transitions=(
        Transition("DRAFT", "SUBMITTED", action="submit"),
        Transition("SUBMITTED", "APPROVED", action="approve"),
        Transition("DRAFT", "POSTED", action="post", guard=BALANCED_GUARD, posts_entry=True),
        Transition("APPROVED", "POSTED", action="post", guard=BALANCED_GUARD, posts_entry=True),
        Transition("POSTED", "REVERSED", action="reverse"),
    ),
    terminal_states=("REVERSED",),
)

APPROVAL_VOUCHER_WORKFLOW = Workflow(
    name="voucher_with_approval",
    description="Voucher lifecycle where posting requires prior approval",
    initial_state="DRAFT",
    states=_STATES,
    transitions=(
        Transition("DRAFT", "SUBMITTED", action="submit"),
        Transition("SUBMITTED", "APPROVED", action="approve"),
        Transition("APPROVED", "POSTED", action="post", guard=BALANCED_GUARD, posts_entry=True),
        Transition("POSTED", "REVERSED", action="reverse"),
    ),
    terminal_states=("REVERSED",),
)


def voucher_workflow(require_approval: bool = False) -> Workflow:
    return APPROVAL_VOUCHER_WORKFLOW if require_approval else VOUCHER_WORKFLOW
