"""
Swap Lifecycle

Nine-step state machine that takes a trade from intent to confirmation:
- SwapState / SwapStep / SwapEvent: immutable snapshot and vocabulary
- reduce: pure transition function over a typed table
- SwapLifecycle: per-session orchestrator running the side effects
- Copilot actions: strict union parsed from assistant replies

Usage:
    from swap_copilot.core.lifecycle import SwapLifecycle

    lifecycle = SwapLifecycle(session_id, aggregator, simulator, approvals, receipts, signer)
    await lifecycle.submit_intent(Intent("ETH", "USDC", "1"))
    await lifecycle.simulate()
    await lifecycle.execute()
"""

from .models import (
    SwapStep,
    SwapEvent,
    SwapState,
    WalletSigner,
)

from .state_machine import (
    TRANSITIONS,
    RESUME_TARGETS,
    TERMINAL_STEPS,
    can_apply,
    reduce,
)

from .actions import (
    CopilotAction,
    CopilotReply,
    FetchQuoteAction,
    ModifyParamsAction,
    SimulateAction,
    ExecuteSwapAction,
    parse_copilot_action,
    parse_copilot_response,
)

from .orchestrator import SwapLifecycle

__all__ = [
    "SwapStep",
    "SwapEvent",
    "SwapState",
    "WalletSigner",
    "TRANSITIONS",
    "RESUME_TARGETS",
    "TERMINAL_STEPS",
    "can_apply",
    "reduce",
    "CopilotAction",
    "CopilotReply",
    "FetchQuoteAction",
    "ModifyParamsAction",
    "SimulateAction",
    "ExecuteSwapAction",
    "parse_copilot_action",
    "parse_copilot_response",
    "SwapLifecycle",
]
