"""
Swap Lifecycle State Machine

A typed transition table and a pure reducer. The reducer never performs I/O;
the orchestrator runs the side effects and feeds their outcomes back in as
events.

input -> parsed -> quote -> [approval_needed -> approving] -> simulated
      -> executing -> complete

Any non-terminal step may fail into ``error``; from there the only way out is
``recover`` to a step at or before the one that failed.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional

from .models import SwapEvent, SwapState, SwapStep
from ..errors import InvalidTransitionError

S = SwapStep
E = SwapEvent

# (event, from step) -> to step
TRANSITIONS: Dict[SwapEvent, Dict[SwapStep, SwapStep]] = {
    E.INTENT_RECEIVED: {
        S.INPUT: S.PARSED,
        S.PARSED: S.PARSED,
        S.QUOTE: S.PARSED,
        S.APPROVAL_NEEDED: S.PARSED,
        S.COMPLETE: S.PARSED,
    },
    E.QUOTE_RECEIVED: {S.PARSED: S.QUOTE},
    E.APPROVAL_REQUIRED: {S.QUOTE: S.APPROVAL_NEEDED},
    E.APPROVAL_SUBMITTED: {S.APPROVAL_NEEDED: S.APPROVING},
    E.SIMULATION_SUCCEEDED: {
        S.QUOTE: S.SIMULATED,
        S.APPROVING: S.SIMULATED,
    },
    E.EXECUTE_REQUESTED: {S.SIMULATED: S.EXECUTING},
    E.TX_SUBMITTED: {S.EXECUTING: S.EXECUTING},
    E.RECEIPT_CONFIRMED: {S.EXECUTING: S.COMPLETE},
}

# Steps a failure in the key step may resume to. Only backward edges.
RESUME_TARGETS: Dict[SwapStep, FrozenSet[SwapStep]] = {
    S.PARSED: frozenset({S.INPUT, S.PARSED}),
    S.QUOTE: frozenset({S.PARSED, S.QUOTE}),
    S.APPROVAL_NEEDED: frozenset({S.QUOTE, S.APPROVAL_NEEDED}),
    S.APPROVING: frozenset({S.QUOTE, S.APPROVAL_NEEDED}),
    S.SIMULATED: frozenset({S.QUOTE, S.SIMULATED}),
    S.EXECUTING: frozenset({S.QUOTE, S.SIMULATED}),
}

TERMINAL_STEPS: FrozenSet[SwapStep] = frozenset({S.INPUT, S.COMPLETE, S.ERROR})

# Steps with a transaction in flight. Reset is refused here.
NON_RESETTABLE_STEPS: FrozenSet[SwapStep] = frozenset({S.APPROVING, S.EXECUTING})


def can_apply(step: SwapStep, event: SwapEvent) -> bool:
    if event == E.RESET:
        return step not in NON_RESETTABLE_STEPS
    if event == E.RECOVER:
        return step == S.ERROR
    if event == E.FAILED:
        return step in RESUME_TARGETS
    return step in TRANSITIONS.get(event, {})


def _next(state: SwapState, step: SwapStep, **changes: Any) -> SwapState:
    return dataclasses.replace(
        state,
        step=step,
        version=state.version + 1,
        updated_at=datetime.now(timezone.utc),
        **changes,
    )


_CLEAR_ERROR = {"error": None, "error_category": None, "failed_step": None, "resume_to": None}


def reduce(state: SwapState, event: SwapEvent, **payload: Any) -> SwapState:
    """Apply ``event`` to ``state`` and return the new state.

    Raises:
        InvalidTransitionError: If ``event`` is not allowed from ``state.step``
    """

    if not can_apply(state.step, event):
        raise InvalidTransitionError(state.step.value, event.value)

    if event == E.RESET:
        return _next(SwapState(generation=state.generation + 1, version=state.version), S.INPUT)

    if event == E.FAILED:
        resume_to: Optional[SwapStep] = payload.get("resume_to")
        if resume_to not in RESUME_TARGETS[state.step]:
            raise InvalidTransitionError(
                state.step.value,
                f"{event.value}->{resume_to.value if resume_to else None}",
            )
        return _next(
            state,
            S.ERROR,
            error=payload.get("error") or "Operation failed",
            error_category=payload.get("error_category"),
            failed_step=state.step,
            resume_to=resume_to,
        )

    if event == E.RECOVER:
        target = state.resume_to or S.INPUT
        changes: Dict[str, Any] = {"failed_step": None, "resume_to": None}
        # Anything produced after the resume point is no longer valid.
        if target in (S.INPUT, S.PARSED):
            changes.update(quote=None, risk=None)
        if target in (S.INPUT, S.PARSED, S.QUOTE):
            changes.update(approval_tx=None, prepared_tx=None, simulation=None, tx_hash=None)
        if target == S.INPUT:
            changes.update(intent=None)
        # Keep the error text so the caller can surface it after recovery.
        return _next(state, target, **changes)

    to_step = TRANSITIONS[event][state.step]

    if event == E.INTENT_RECEIVED:
        return _next(
            state,
            to_step,
            intent=payload["intent"],
            generation=payload.get("generation", state.generation + 1),
            quote=None,
            risk=None,
            approval_tx=None,
            prepared_tx=None,
            simulation=None,
            tx_hash=None,
            receipt=None,
            **_CLEAR_ERROR,
        )

    if event == E.QUOTE_RECEIVED:
        return _next(state, to_step, quote=payload["quote"], risk=payload.get("risk"), **_CLEAR_ERROR)

    if event == E.APPROVAL_REQUIRED:
        return _next(state, to_step, approval_tx=payload["approval_tx"], **_CLEAR_ERROR)

    if event == E.APPROVAL_SUBMITTED:
        return _next(state, to_step, tx_hash=payload.get("tx_hash"), **_CLEAR_ERROR)

    if event == E.SIMULATION_SUCCEEDED:
        simulation = payload["simulation"]
        if not simulation.success:
            raise InvalidTransitionError(state.step.value, "simulation_succeeded(without success)")
        return _next(
            state,
            to_step,
            simulation=simulation,
            prepared_tx=payload["prepared_tx"],
            tx_hash=None,
            **_CLEAR_ERROR,
        )

    if event == E.EXECUTE_REQUESTED:
        return _next(state, to_step, **_CLEAR_ERROR)

    if event == E.TX_SUBMITTED:
        return _next(state, to_step, tx_hash=payload["tx_hash"])

    if event == E.RECEIPT_CONFIRMED:
        return _next(state, to_step, receipt=payload.get("receipt"))

    raise InvalidTransitionError(state.step.value, event.value)  # pragma: no cover
