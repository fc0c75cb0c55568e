"""
Transaction Execution Layer

Builds unsigned calldata, checks allowances, dry-runs transactions, and
watches receipts:
- TransactionBuilder: swap and approval calldata from server-derived addresses
- ApprovalChecker: ERC20 allowance reads
- SimulationGateway: pre-execution simulation with classified failures
- ReceiptWatcher: polls until a broadcast transaction is mined

Usage:
    from swap_copilot.core.execution import TransactionBuilder, SimulationGateway

    tx = TransactionBuilder.build_swap(quote, recipient="0x...")
    result = await SimulationGateway().simulate(tx)
"""

from .models import (
    TransactionType,
    TransactionStatus,
    PreparedTransaction,
    SimulationResult,
    AllowanceCheck,
    TransactionResult,
)

from .tx_builder import (
    TransactionBuilder,
    encode_exact_input_single,
)

from .approvals import ApprovalChecker

from .simulation import (
    SimulationGateway,
    classify_revert,
)

from .receipts import ReceiptWatcher

__all__ = [
    "TransactionType",
    "TransactionStatus",
    "PreparedTransaction",
    "SimulationResult",
    "AllowanceCheck",
    "TransactionResult",
    "TransactionBuilder",
    "encode_exact_input_single",
    "ApprovalChecker",
    "SimulationGateway",
    "classify_revert",
    "ReceiptWatcher",
]
