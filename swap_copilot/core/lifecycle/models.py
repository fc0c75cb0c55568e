"""
Swap lifecycle models.

``SwapState`` is an immutable snapshot: the reducer returns a new one for
every transition, so observers can hold on to what they were given.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from ..execution.models import PreparedTransaction, SimulationResult, TransactionResult
from ..risk.models import RiskAssessment
from ..swap.models import Intent, Quote


class SwapStep(str, Enum):
    INPUT = "input"
    PARSED = "parsed"
    QUOTE = "quote"
    APPROVAL_NEEDED = "approval_needed"
    APPROVING = "approving"
    SIMULATED = "simulated"
    EXECUTING = "executing"
    COMPLETE = "complete"
    ERROR = "error"


class SwapEvent(str, Enum):
    INTENT_RECEIVED = "intent_received"
    QUOTE_RECEIVED = "quote_received"
    APPROVAL_REQUIRED = "approval_required"
    APPROVAL_SUBMITTED = "approval_submitted"
    SIMULATION_SUCCEEDED = "simulation_succeeded"
    EXECUTE_REQUESTED = "execute_requested"
    TX_SUBMITTED = "tx_submitted"
    RECEIPT_CONFIRMED = "receipt_confirmed"
    FAILED = "failed"
    RECOVER = "recover"
    RESET = "reset"


@dataclass(frozen=True)
class SwapState:
    step: SwapStep = SwapStep.INPUT
    intent: Optional[Intent] = None
    quote: Optional[Quote] = None
    risk: Optional[RiskAssessment] = None
    approval_tx: Optional[PreparedTransaction] = None
    prepared_tx: Optional[PreparedTransaction] = None
    simulation: Optional[SimulationResult] = None
    tx_hash: Optional[str] = None
    receipt: Optional[TransactionResult] = None

    # Error excursion
    error: Optional[str] = None
    error_category: Optional[str] = None
    failed_step: Optional[SwapStep] = None
    resume_to: Optional[SwapStep] = None

    # Bumped on every new intent; results tagged with an older value are stale.
    generation: int = 0
    version: int = 0
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.value,
            "intent": self.intent.to_dict() if self.intent else None,
            "quote": self.quote.to_response() if self.quote else None,
            "risk": self.risk.to_dict() if self.risk else None,
            "approval_tx": self.approval_tx.to_response() if self.approval_tx else None,
            "prepared_tx": self.prepared_tx.to_response() if self.prepared_tx else None,
            "simulation": self.simulation.to_response() if self.simulation else None,
            "tx_hash": self.tx_hash,
            "error": self.error,
            "error_category": self.error_category,
            "generation": self.generation,
            "version": self.version,
        }


class WalletSigner(Protocol):
    """Signs and broadcasts; owns the keys. Returns the transaction hash."""

    address: str

    async def send_transaction(self, tx: PreparedTransaction) -> str:
        ...
