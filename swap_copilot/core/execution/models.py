"""
Transaction execution models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from ..errors import SimulationErrorCategory


class TransactionType(str, Enum):
    """Types of transactions."""
    SWAP = "swap"
    APPROVE = "approve"


class TransactionStatus(str, Enum):
    """Transaction lifecycle status."""
    PENDING = "pending"          # Created, not yet submitted
    SUBMITTED = "submitted"      # Broadcast to network
    CONFIRMED = "confirmed"      # Successfully confirmed
    REVERTED = "reverted"        # On-chain revert
    TIMEOUT = "timeout"          # Confirmation timeout


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PreparedTransaction:
    """An unsigned transaction for the wallet to sign and broadcast."""
    tx_id: str                                  # Internal tracking ID
    tx_type: TransactionType
    chain_id: int
    from_address: Optional[str]
    to_address: str
    data: str                                   # Encoded calldata (hex)
    value: int = 0                              # Wei to send
    gas_limit: Optional[int] = None

    # Metadata
    description: str = ""
    quote_key: Optional[str] = None             # Request key of the quote this was built from
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for signing."""
        tx = {
            "to": self.to_address,
            "data": self.data,
            "value": hex(self.value),
            "chainId": hex(self.chain_id),
        }
        if self.from_address:
            tx["from"] = self.from_address
        if self.gas_limit:
            tx["gas"] = hex(self.gas_limit)
        return tx

    def to_response(self) -> Dict[str, Any]:
        """Wire shape of the build endpoints: decimal strings, no hex."""
        response = {
            "to": self.to_address,
            "data": self.data,
            "value": str(self.value),
        }
        if self.gas_limit:
            response["gas"] = str(self.gas_limit)
        return response


@dataclass
class SimulationResult:
    """Outcome of a dry run against forked chain state."""
    success: bool
    simulation_id: str
    gas_used: Optional[int] = None
    error_category: Optional[SimulationErrorCategory] = None
    error_message: Optional[str] = None         # Safe, user-facing text
    raw_error: Optional[str] = None             # Revert reason, logs only

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "success": self.success,
            "gasUsed": self.gas_used,
        }
        if not self.success:
            response["error"] = self.error_message
            response["errorCategory"] = self.error_category.value if self.error_category else None
        return response


@dataclass(frozen=True)
class AllowanceCheck:
    allowance: int
    needs_approval: bool

    def to_response(self) -> Dict[str, Any]:
        return {"allowance": str(self.allowance), "needsApproval": self.needs_approval}


@dataclass
class TransactionResult:
    """Result of waiting for a broadcast transaction."""
    tx_hash: str
    status: TransactionStatus = TransactionStatus.SUBMITTED

    # Confirmation details
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    confirmed_at: Optional[datetime] = None

    # Error info
    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == TransactionStatus.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "status": self.status.value,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
            "error": self.error,
        }
