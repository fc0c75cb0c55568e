"""
Pre-execution simulation.

Every swap is dry-run against forked chain state before the wallet is asked
to sign. Revert reasons are mapped into a small set of user-facing categories;
the raw reason only goes to logs.
"""

import logging
import re
import secrets
from typing import Optional, Pattern, Tuple

from .models import PreparedTransaction, SimulationResult
from ..errors import SIMULATION_MESSAGES, SimulationErrorCategory, SimulationFailure, ValidationError
from ...logging_config import log_security_event
from ...providers.tenderly import TenderlyProvider

logger = logging.getLogger(__name__)

# First match wins.
REVERT_PATTERNS: Tuple[Tuple[Pattern[str], SimulationErrorCategory], ...] = (
    (re.compile(r"insufficient (funds|balance)|exceeds balance", re.I), SimulationErrorCategory.INSUFFICIENT_FUNDS),
    (re.compile(r"allowance|\bSTF\b|not approved", re.I), SimulationErrorCategory.MISSING_APPROVAL),
    (re.compile(r"too little received|slippage|amountOutMinimum", re.I), SimulationErrorCategory.SLIPPAGE),
    (re.compile(r"liquidity|\bSPL\b", re.I), SimulationErrorCategory.INSUFFICIENT_LIQUIDITY),
    (re.compile(r"deadline|transaction too old|expired", re.I), SimulationErrorCategory.DEADLINE_EXCEEDED),
    (re.compile(r"revert", re.I), SimulationErrorCategory.WOULD_REVERT),
)


def classify_revert(message: Optional[str]) -> SimulationErrorCategory:
    if not message:
        return SimulationErrorCategory.UNKNOWN
    for pattern, category in REVERT_PATTERNS:
        if pattern.search(message):
            return category
    return SimulationErrorCategory.UNKNOWN


class SimulationGateway:
    """Forwards candidate transactions to the simulation service."""

    def __init__(self, provider: Optional[TenderlyProvider] = None):
        self.provider = provider or TenderlyProvider()

    @staticmethod
    def generate_simulation_id() -> str:
        return f"sim_{secrets.token_hex(12)}"

    async def simulate(self, tx: PreparedTransaction) -> SimulationResult:
        """Dry-run ``tx``. Service outages raise ``SimulationUnavailable``."""

        if not tx.from_address:
            raise ValidationError("Simulation requires a sender address")

        transaction = await self.provider.simulate(
            from_address=tx.from_address,
            to_address=tx.to_address,
            data=tx.data,
            value=tx.value,
        )

        simulation_id = self.generate_simulation_id()
        gas_used = transaction.get("gas_used")
        gas_used = int(gas_used) if gas_used is not None else None

        if transaction.get("status"):
            logger.info("Simulation %s succeeded (gas_used=%s)", simulation_id, gas_used)
            return SimulationResult(success=True, simulation_id=simulation_id, gas_used=gas_used)

        raw_error = transaction.get("error_message") or None
        category = classify_revert(raw_error)
        log_security_event(
            "simulation_failure",
            tx.from_address,
            category.value,
            to=tx.to_address,
            tx_type=tx.tx_type.value,
        )
        logger.warning("Simulation %s failed: %s (%s)", simulation_id, category.value, raw_error)
        return SimulationResult(
            success=False,
            simulation_id=simulation_id,
            gas_used=gas_used,
            error_category=category,
            error_message=SIMULATION_MESSAGES[category],
            raw_error=raw_error,
        )

    @staticmethod
    def ensure_success(result: SimulationResult) -> SimulationResult:
        if not result.success:
            raise SimulationFailure(result.error_category or SimulationErrorCategory.UNKNOWN, result.raw_error)
        return result
