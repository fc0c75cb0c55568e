"""
Swap Lifecycle Orchestrator

Owns the single SwapState of a session and runs the side effects behind each
transition: quoting, risk assessment, allowance checks, simulation, signing
and receipt waits. Every outcome is fed back through the pure reducer.

Failures follow one rule: the machine records the error, then recovers to the
last stable step before the failed operation. The exception is re-raised so
the caller can surface it. On-chain reverts and receipt timeouts are outcomes,
not exceptions: they are reported through ``state.error``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple

from .actions import (
    CopilotAction,
    ExecuteSwapAction,
    FetchQuoteAction,
    ModifyParamsAction,
    SimulateAction,
)
from .models import SwapEvent, SwapState, SwapStep, WalletSigner
from .state_machine import can_apply, reduce
from ..errors import (
    ErrorCategory,
    InvalidTransitionError,
    SimulationFailure,
    StaleQuote,
    SwapError,
    ValidationError,
    sanitize_error_message,
)
from ..execution.approvals import ApprovalChecker
from ..execution.models import PreparedTransaction, SimulationResult, TransactionResult, TransactionStatus
from ..execution.receipts import ReceiptWatcher
from ..execution.simulation import SimulationGateway
from ..execution.tx_builder import TransactionBuilder
from ..risk.classifier import assess_swap_risk
from ..risk.market import MarketContext, MarketDataSource, build_risk_input
from ..risk.models import RiskAssessment, RiskLevel
from ..swap.constants import SWAP_ROUTER
from ..swap.models import Intent, Quote
from ..swap.quotes import QuoteAggregator
from ...config import Settings, settings as default_settings
from ...logging_config import log_security_event

logger = logging.getLogger(__name__)

Observer = Callable[[SwapState], Any]

S = SwapStep
E = SwapEvent


class SwapLifecycle:
    """
    Drives one session's swap from intent to confirmation.

    Collaborators are injected so the wallet boundary, the quoter and the
    simulation service can each be replaced independently.
    """

    def __init__(
        self,
        session_id: str,
        aggregator: QuoteAggregator,
        simulator: SimulationGateway,
        approvals: ApprovalChecker,
        receipts: ReceiptWatcher,
        signer: WalletSigner,
        market: Optional[MarketDataSource] = None,
        settings: Settings = default_settings,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.session_id = session_id
        self.aggregator = aggregator
        self.simulator = simulator
        self.approvals = approvals
        self.receipts = receipts
        self.signer = signer
        self.market = market
        self.settings = settings
        self._clock = clock
        self._sleep = sleep

        self._state = SwapState()
        self._observers: List[Observer] = []
        self._quote_task: Optional[asyncio.Task] = None
        self._reset_task: Optional[asyncio.Task] = None
        # Simulation ids that already produced a broadcast
        self._executed: Set[str] = set()

    # ------------------------------------------------------------------
    # State and observers
    # ------------------------------------------------------------------

    @property
    def state(self) -> SwapState:
        return self._state

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer`` for every transition. Returns an unsubscribe callable."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _apply(self, event: SwapEvent, **payload: Any) -> SwapState:
        previous = self._state.step
        self._state = reduce(self._state, event, **payload)
        logger.debug(
            "[%s] %s: %s -> %s",
            self.session_id,
            event.value,
            previous.value,
            self._state.step.value,
        )
        for observer in list(self._observers):
            try:
                observer(self._state)
            except Exception:
                logger.exception("[%s] Swap state observer failed", self.session_id)
        return self._state

    def _is_current(self, generation: int) -> bool:
        return self._state.generation == generation

    def _fail(self, error: BaseException, resume_to: SwapStep) -> SwapState:
        """Record ``error`` and return to ``resume_to``."""
        if isinstance(error, SimulationFailure):
            category = error.error_category.value
        elif isinstance(error, SwapError):
            category = error.category.value
        else:
            category = ErrorCategory.UNKNOWN.value

        logger.warning(
            "[%s] %s failed: %s",
            self.session_id,
            self._state.step.value,
            error,
        )
        self._apply(
            E.FAILED,
            error=sanitize_error_message(error),
            error_category=category,
            resume_to=resume_to,
        )
        return self._apply(E.RECOVER)

    def _fail_with_message(self, message: str, category: str, resume_to: SwapStep) -> SwapState:
        logger.warning("[%s] %s failed: %s", self.session_id, self._state.step.value, message)
        self._apply(E.FAILED, error=message, error_category=category, resume_to=resume_to)
        return self._apply(E.RECOVER)

    def _require_step(self, action: str, *steps: SwapStep) -> None:
        if self._state.step not in steps:
            raise InvalidTransitionError(self._state.step.value, action)

    def _quote_is_stale(self, quote: Quote) -> bool:
        return quote.is_stale(now=self._clock(), ttl=self.settings.quote_cache_ttl_seconds)

    # ------------------------------------------------------------------
    # Intent and quoting
    # ------------------------------------------------------------------

    async def submit_intent(self, intent: Intent) -> SwapState:
        """Start (or restart) pricing for ``intent``.

        Any quote still in flight for an older intent is cancelled and its
        result discarded.
        """
        self._apply(E.INTENT_RECEIVED, intent=intent, generation=self._state.generation + 1)
        self._cancel_task(self._quote_task)
        self._cancel_task(self._reset_task)
        return await self.fetch_quote()

    async def change_slippage(self, slippage_bps: int) -> SwapState:
        intent = self._state.intent
        if intent is None:
            raise ValidationError("No active swap to modify")
        return await self.submit_intent(intent.with_slippage(slippage_bps))

    async def refresh_quote(self) -> SwapState:
        """Drop the cached quote for the current intent and price it again."""
        intent = self._state.intent
        if intent is None:
            raise ValidationError("No active swap to refresh")
        await self.aggregator.invalidate(intent)
        return await self.submit_intent(intent)

    async def fetch_quote(self) -> SwapState:
        self._require_step("fetch_quote", S.PARSED)
        intent = self._state.intent
        generation = self._state.generation
        assert intent is not None

        task = asyncio.ensure_future(self._quote_and_assess(intent))
        self._quote_task = task
        try:
            quote, risk = await task
        except asyncio.CancelledError:
            if task.cancelled() and not self._is_current(generation):
                logger.info("[%s] Quote for %s superseded", self.session_id, intent.request_key)
                return self._state
            raise
        except Exception as e:
            if self._is_current(generation):
                self._fail(e, resume_to=S.PARSED)
            raise
        finally:
            if self._quote_task is task:
                self._quote_task = None

        current = self._state
        if (
            not self._is_current(generation)
            or current.step != S.PARSED
            or current.intent is None
            or current.intent.request_key != quote.request_key
        ):
            logger.info("[%s] Discarding superseded quote %s", self.session_id, quote.request_key)
            return current

        return self._apply(E.QUOTE_RECEIVED, quote=quote, risk=risk)

    async def _quote_and_assess(self, intent: Intent) -> Tuple[Quote, RiskAssessment]:
        quote = await self.aggregator.get_quote(intent)
        market = await self._market_context(intent)
        risk = assess_swap_risk(build_risk_input(quote, market, self.settings))
        logger.info(
            "[%s] Quote %s: out=%d fee=%d risk=%s(%d)",
            self.session_id,
            quote.request_key,
            quote.amount_out,
            quote.fee_tier,
            risk.level.value,
            risk.score,
        )
        return quote, risk

    async def _market_context(self, intent: Intent) -> Optional[MarketContext]:
        if self.market is None:
            return None
        try:
            return await self.market.get_market_context([intent.token_in_symbol, intent.token_out_symbol])
        except Exception as e:
            # Risk scoring degrades to the inputs it has
            logger.warning("[%s] Market data unavailable: %s", self.session_id, e)
            return None

    # ------------------------------------------------------------------
    # Approval and simulation
    # ------------------------------------------------------------------

    def _sender(self) -> str:
        address = getattr(self.signer, "address", None)
        if not address:
            raise ValidationError("Connect a wallet before continuing")
        return address

    async def simulate(self) -> SwapState:
        """Check the allowance, then build and dry-run the swap.

        Non-native input with an insufficient allowance moves to
        ``approval_needed`` instead of simulating.
        """
        self._require_step("simulate", S.QUOTE)
        quote = self._state.quote
        generation = self._state.generation
        assert quote is not None

        try:
            if self._quote_is_stale(quote):
                await self.aggregator.invalidate(quote.intent)
                raise StaleQuote("Quote expired before simulation")

            sender = self._sender()

            if not quote.token_in.is_native:
                token = quote.pool_token_in.address
                allowance = await self.approvals.check(token, sender, SWAP_ROUTER, quote.amount_in)
                if not self._is_current(generation):
                    return self._state
                if allowance.needs_approval:
                    approval_tx = TransactionBuilder.build_approval(
                        token_address=token,
                        spender_address=SWAP_ROUTER,
                        owner_address=sender,
                    )
                    return self._apply(E.APPROVAL_REQUIRED, approval_tx=approval_tx)

            prepared, result = await self._build_and_simulate(quote, sender)
        except Exception as e:
            if self._is_current(generation) and self._state.step == S.QUOTE:
                self._fail(e, resume_to=S.QUOTE)
            raise

        if not self._is_current(generation):
            return self._state
        return self._apply(E.SIMULATION_SUCCEEDED, simulation=result, prepared_tx=prepared)

    async def _build_and_simulate(self, quote: Quote, sender: str) -> Tuple[PreparedTransaction, SimulationResult]:
        prepared = TransactionBuilder.build_swap(quote, recipient=sender)
        result = await self.simulator.simulate(prepared)
        SimulationGateway.ensure_success(result)
        return prepared, result

    async def approve(self) -> SwapState:
        """Send the pending approval, wait for it, then re-simulate the swap."""
        self._require_step("approve", S.APPROVAL_NEEDED)
        approval_tx = self._state.approval_tx
        quote = self._state.quote
        generation = self._state.generation
        assert approval_tx is not None and quote is not None

        try:
            tx_hash = await self.signer.send_transaction(approval_tx)
        except Exception as e:
            if self._is_current(generation):
                self._fail(e, resume_to=S.APPROVAL_NEEDED)
            raise

        if not self._is_current(generation):
            return self._state
        self._apply(E.APPROVAL_SUBMITTED, tx_hash=tx_hash)
        logger.info("[%s] Approval submitted: %s", self.session_id, tx_hash)

        try:
            receipt = await self.receipts.wait(tx_hash)
        except Exception as e:
            if self._is_current(generation):
                self._fail(e, resume_to=S.APPROVAL_NEEDED)
            raise
        if not self._is_current(generation):
            return self._state
        if not receipt.is_success:
            return self._fail_with_message(
                _receipt_message(receipt, "Approval"),
                receipt.status.value,
                resume_to=S.APPROVAL_NEEDED,
            )

        # Give RPC nodes time to see the new allowance before simulating.
        await self._sleep(self.settings.approval_settle_seconds)
        if not self._is_current(generation):
            return self._state

        try:
            if self._quote_is_stale(quote):
                await self.aggregator.invalidate(quote.intent)
                raise StaleQuote("Quote expired while waiting for approval")
            prepared, result = await self._build_and_simulate(quote, self._sender())
        except Exception as e:
            if self._is_current(generation):
                self._fail(e, resume_to=S.QUOTE)
            raise

        if not self._is_current(generation):
            return self._state
        return self._apply(E.SIMULATION_SUCCEEDED, simulation=result, prepared_tx=prepared)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, confirm_high_risk: bool = False) -> SwapState:
        """Broadcast the simulated swap and wait for its receipt.

        Only valid from ``simulated``; each simulation can be broadcast once.

        Raises:
            InvalidTransitionError: Not in ``simulated``, or already broadcast
            ValidationError: Critical risk without ``confirm_high_risk``
        """
        self._require_step("execute", S.SIMULATED)
        state = self._state
        assert state.simulation is not None and state.prepared_tx is not None and state.quote is not None

        simulation_id = state.simulation.simulation_id or ""
        if simulation_id in self._executed:
            raise InvalidTransitionError(state.step.value, "execute_again")

        risk = state.risk
        if risk is not None and risk.level == RiskLevel.CRITICAL:
            if not confirm_high_risk:
                raise ValidationError("This swap is rated critical risk. Confirm explicitly to proceed.")
            log_security_event(
                "risk_override",
                self.signer.address,
                f"Critical risk swap confirmed (score {risk.score})",
                session_id=self.session_id,
                quote_key=state.quote.request_key,
            )

        if self._quote_is_stale(state.quote):
            await self.aggregator.invalidate(state.quote.intent)
            error = StaleQuote("Quote expired before execution")
            self._fail(error, resume_to=S.QUOTE)
            raise error

        self._executed.add(simulation_id)
        self._apply(E.EXECUTE_REQUESTED)
        generation = self._state.generation

        try:
            tx_hash = await self.signer.send_transaction(state.prepared_tx)
        except Exception as e:
            # Nothing was broadcast, so the same simulation may be retried.
            self._executed.discard(simulation_id)
            if self._is_current(generation):
                self._fail(e, resume_to=S.SIMULATED)
            raise

        if not self._is_current(generation):
            logger.warning("[%s] Swap %s submitted after session moved on", self.session_id, tx_hash)
            return self._state
        self._apply(E.TX_SUBMITTED, tx_hash=tx_hash)
        logger.info("[%s] Swap submitted: %s", self.session_id, tx_hash)

        try:
            receipt = await self.receipts.wait(tx_hash)
        except Exception as e:
            if self._is_current(generation):
                self._fail(e, resume_to=S.QUOTE)
            raise

        if not self._is_current(generation):
            return self._state
        if not receipt.is_success:
            return self._fail_with_message(
                _receipt_message(receipt, "Swap"),
                receipt.status.value,
                resume_to=S.QUOTE,
            )

        self._apply(E.RECEIPT_CONFIRMED, receipt=receipt)
        self._schedule_reset(self._state.generation)
        return self._state

    # ------------------------------------------------------------------
    # Copilot actions and reset
    # ------------------------------------------------------------------

    async def dispatch(self, action: CopilotAction) -> SwapState:
        """Run a validated copilot action. Execution never overrides a critical rating."""
        if isinstance(action, FetchQuoteAction):
            current = self._state.intent
            slippage = current.slippage_bps if current else self.settings.default_slippage_bps
            params = action.params
            return await self.submit_intent(Intent(params.token_in, params.token_out, params.amount, slippage))

        if isinstance(action, ModifyParamsAction):
            current = self._state.intent
            if current is None:
                raise ValidationError("No active swap to modify")
            params = action.params
            amount = params.amount if params.amount is not None else current.amount
            slippage = (
                int(round(params.slippage * 100)) if params.slippage is not None else current.slippage_bps
            )
            return await self.submit_intent(
                Intent(current.token_in_symbol, current.token_out_symbol, amount, slippage)
            )

        if isinstance(action, SimulateAction):
            return await self.simulate()

        if isinstance(action, ExecuteSwapAction):
            return await self.execute(confirm_high_risk=False)

        raise ValidationError("Unsupported copilot action")

    async def reset(self) -> SwapState:
        """Drop the current swap. Refused while a transaction is in flight."""
        if not can_apply(self._state.step, E.RESET):
            raise InvalidTransitionError(self._state.step.value, E.RESET.value)
        self._cancel_task(self._quote_task)
        self._cancel_task(self._reset_task)
        return self._apply(E.RESET)

    def _schedule_reset(self, generation: int) -> None:
        async def auto_reset() -> None:
            await self._sleep(self.settings.auto_reset_seconds)
            if self._is_current(generation) and self._state.step == S.COMPLETE:
                self._apply(E.RESET)

        self._reset_task = asyncio.ensure_future(auto_reset())

    @staticmethod
    def _cancel_task(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()


def _receipt_message(receipt: TransactionResult, label: str) -> str:
    if receipt.status == TransactionStatus.TIMEOUT:
        return f"{label} was not confirmed in time. Check your wallet before retrying."
    return f"{label} transaction reverted on-chain."
