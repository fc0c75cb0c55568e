"""
Tests for the swap lifecycle orchestrator with every collaborator faked.
"""

import asyncio
import dataclasses
from typing import Callable, Dict, List, Optional

import pytest

from swap_copilot.config import Settings
from swap_copilot.core.errors import (
    SIMULATION_MESSAGES,
    InvalidTransitionError,
    NoLiquidity,
    SimulationErrorCategory,
    SimulationFailure,
    StaleQuote,
    ValidationError,
)
from swap_copilot.core.execution import (
    AllowanceCheck,
    PreparedTransaction,
    SimulationResult,
    TransactionResult,
    TransactionStatus,
    TransactionType,
)
from swap_copilot.core.lifecycle import SwapLifecycle, SwapState, SwapStep, parse_copilot_action
from swap_copilot.core.risk import RiskLevel
from swap_copilot.core.swap.constants import SWAP_ROUTER, TOKENS
from swap_copilot.core.swap.models import Intent, Quote, TokenVariant, compute_min_out

S = SwapStep
WALLET = "0x" + "ab" * 20


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeAggregator:
    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: List[Intent] = []
        self.invalidated: List[Intent] = []
        self.error: Optional[Exception] = None
        self.gates: Dict[str, asyncio.Event] = {}
        self.started = asyncio.Event()
        self.price_impact = 0.01

    async def get_quote(self, intent: Intent) -> Quote:
        self.calls.append(intent)
        self.started.set()
        gate = self.gates.get(intent.amount)
        if gate is not None:
            await gate.wait()
        if self.error:
            raise self.error

        tin = TokenVariant.from_symbol(intent.token_in_symbol)
        tout = TokenVariant.from_symbol(intent.token_out_symbol)
        pool_in, pool_out = tin.pool_token(), tout.pool_token()
        amount_in = int(intent.amount_decimal.scaleb(pool_in.decimals))
        amount_out = 3_900 * 10**6 * int(intent.amount_decimal) if tin.is_native else 10**15
        return Quote(
            intent=intent,
            amount_in=amount_in,
            amount_out=amount_out,
            min_out=compute_min_out(amount_out, intent.slippage_bps),
            fee_tier=500,
            gas_estimate=150_000,
            price=3_900.0,
            price_impact=self.price_impact,
            token_in=tin,
            token_out=tout,
            pool_token_in=pool_in,
            pool_token_out=pool_out,
            quoted_at=self.clock(),
        )

    async def invalidate(self, intent: Intent) -> None:
        self.invalidated.append(intent)


class FakeApprovals:
    def __init__(self, allowance: int = 2**255):
        self.allowance = allowance
        self.calls: List[tuple] = []

    async def check(self, token_address: str, owner_address: str, spender_address: str, amount: int) -> AllowanceCheck:
        self.calls.append((token_address, owner_address, spender_address, amount))
        return AllowanceCheck(allowance=self.allowance, needs_approval=self.allowance < amount)


class FakeSimulator:
    def __init__(self):
        self.failure: Optional[SimulationErrorCategory] = None
        self.simulated: List[PreparedTransaction] = []

    async def simulate(self, tx: PreparedTransaction) -> SimulationResult:
        self.simulated.append(tx)
        simulation_id = f"sim_{len(self.simulated)}"
        if self.failure:
            return SimulationResult(
                success=False,
                simulation_id=simulation_id,
                error_category=self.failure,
                error_message=SIMULATION_MESSAGES[self.failure],
                raw_error="Too little received",
            )
        return SimulationResult(success=True, simulation_id=simulation_id, gas_used=140_000)


class FakeReceipts:
    def __init__(self):
        self.statuses: List[TransactionStatus] = []
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    async def wait(self, tx_hash: str) -> TransactionResult:
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        status = self.statuses.pop(0) if self.statuses else TransactionStatus.CONFIRMED
        return TransactionResult(tx_hash=tx_hash, status=status, block_number=1)


class FakeSigner:
    address = WALLET

    def __init__(self):
        self.sent: List[PreparedTransaction] = []
        self.errors: List[Exception] = []
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    async def send_transaction(self, tx: PreparedTransaction) -> str:
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        self.sent.append(tx)
        return f"0xhash{len(self.sent)}"


class Harness:
    def __init__(self, allowance: int = 2**255):
        self.clock = FakeClock()
        self.sleeps: List[float] = []
        self.on_sleep: Optional[Callable[[], None]] = None
        self.aggregator = FakeAggregator(self.clock)
        self.approvals = FakeApprovals(allowance)
        self.simulator = FakeSimulator()
        self.receipts = FakeReceipts()
        self.signer = FakeSigner()
        self.steps: List[SwapStep] = []
        self.lifecycle = SwapLifecycle(
            session_id="test",
            aggregator=self.aggregator,
            simulator=self.simulator,
            approvals=self.approvals,
            receipts=self.receipts,
            signer=self.signer,
            settings=Settings(_env_file=None),
            clock=self.clock,
            sleep=self.sleep,
        )
        self.lifecycle.subscribe(lambda state: self.steps.append(state.step))

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep()


async def drain() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_native_swap_runs_to_completion_and_resets(self):
        h = Harness()
        lc = h.lifecycle

        state = await lc.submit_intent(Intent("ETH", "USDC", "1"))
        assert state.step == S.QUOTE
        assert state.risk is not None
        assert state.risk.level == RiskLevel.MEDIUM

        state = await lc.simulate()
        assert state.step == S.SIMULATED
        assert h.approvals.calls == []
        assert state.prepared_tx.value == 10**18

        state = await lc.execute()
        assert state.step == S.COMPLETE
        assert state.tx_hash == "0xhash1"
        assert state.receipt.is_success
        assert h.signer.sent[0].tx_type == TransactionType.SWAP
        assert h.steps == [S.PARSED, S.QUOTE, S.SIMULATED, S.EXECUTING, S.EXECUTING, S.COMPLETE]

        await drain()
        assert lc.state.step == S.INPUT
        assert lc.state.generation == state.generation + 1
        assert h.sleeps == [5.0]

    @pytest.mark.asyncio
    async def test_erc20_swap_goes_through_approval(self):
        h = Harness(allowance=0)
        lc = h.lifecycle

        await lc.submit_intent(Intent("USDC", "ETH", "100"))
        state = await lc.simulate()

        assert state.step == S.APPROVAL_NEEDED
        usdc = str(TOKENS["USDC"]["address"])
        assert h.approvals.calls == [(usdc, WALLET, SWAP_ROUTER, 100_000_000)]
        assert state.approval_tx.to_address == usdc
        assert state.approval_tx.data.startswith("0x095ea7b3")
        assert h.simulator.simulated == []

        state = await lc.approve()

        assert state.step == S.SIMULATED
        assert [tx.tx_type for tx in h.signer.sent] == [TransactionType.APPROVE]
        assert h.sleeps == [3.0]
        assert S.APPROVING in h.steps

        state = await lc.execute()
        assert state.step == S.COMPLETE
        assert h.signer.sent[-1].value == 0

    @pytest.mark.asyncio
    async def test_sufficient_allowance_skips_approval(self):
        h = Harness()

        await h.lifecycle.submit_intent(Intent("USDC", "ETH", "100"))
        state = await h.lifecycle.simulate()

        assert state.step == S.SIMULATED
        assert len(h.approvals.calls) == 1


class TestFailures:

    @pytest.mark.asyncio
    async def test_quote_failure_returns_to_parsed(self):
        h = Harness()
        h.aggregator.error = NoLiquidity("no pools")

        with pytest.raises(NoLiquidity):
            await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))

        state = h.lifecycle.state
        assert state.step == S.PARSED
        assert state.error == "No liquidity available for this pair"
        assert state.error_category == "liquidity"
        assert h.steps[-2:] == [S.ERROR, S.PARSED]

    @pytest.mark.asyncio
    async def test_simulation_failure_returns_to_quote(self):
        h = Harness()
        h.simulator.failure = SimulationErrorCategory.SLIPPAGE

        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))
        with pytest.raises(SimulationFailure):
            await h.lifecycle.simulate()

        state = h.lifecycle.state
        assert state.step == S.QUOTE
        assert state.quote is not None
        assert state.error == SIMULATION_MESSAGES[SimulationErrorCategory.SLIPPAGE]
        assert state.error_category == "slippage"
        assert "Too little received" not in state.error

    @pytest.mark.asyncio
    async def test_execute_from_quote_is_rejected(self):
        h = Harness()
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))

        with pytest.raises(InvalidTransitionError):
            await h.lifecycle.execute()

        assert h.lifecycle.state.step == S.QUOTE
        assert h.signer.sent == []

    @pytest.mark.asyncio
    async def test_stale_quote_blocks_simulation(self):
        h = Harness()
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))
        h.clock.now += 30

        with pytest.raises(StaleQuote):
            await h.lifecycle.simulate()

        assert h.lifecycle.state.step == S.QUOTE
        assert h.aggregator.invalidated == [Intent("ETH", "USDC", "1")]
        assert h.simulator.simulated == []

    @pytest.mark.asyncio
    async def test_stale_quote_blocks_execution(self):
        h = Harness()
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))
        await h.lifecycle.simulate()
        h.clock.now += 31

        with pytest.raises(StaleQuote):
            await h.lifecycle.execute()

        assert h.lifecycle.state.step == S.QUOTE
        assert h.signer.sent == []

    @pytest.mark.asyncio
    async def test_wallet_rejection_allows_retry(self):
        h = Harness()
        h.signer.errors.append(RuntimeError("User rejected the request"))
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))
        await h.lifecycle.simulate()

        with pytest.raises(RuntimeError):
            await h.lifecycle.execute()
        assert h.lifecycle.state.step == S.SIMULATED
        assert h.lifecycle.state.error == "An unexpected error occurred. Please try again."

        state = await h.lifecycle.execute()
        assert state.step == S.COMPLETE

    @pytest.mark.asyncio
    async def test_reverted_swap_returns_to_quote(self):
        h = Harness()
        h.receipts.statuses.append(TransactionStatus.REVERTED)
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))
        await h.lifecycle.simulate()

        state = await h.lifecycle.execute()

        assert state.step == S.QUOTE
        assert state.error == "Swap transaction reverted on-chain."
        assert state.error_category == "reverted"
        assert state.prepared_tx is None

    @pytest.mark.asyncio
    async def test_approval_timeout_stays_on_approval(self):
        h = Harness(allowance=0)
        h.receipts.statuses.append(TransactionStatus.TIMEOUT)
        await h.lifecycle.submit_intent(Intent("USDC", "ETH", "100"))
        await h.lifecycle.simulate()

        state = await h.lifecycle.approve()

        assert state.step == S.APPROVAL_NEEDED
        assert state.approval_tx is not None
        assert state.error == "Approval was not confirmed in time. Check your wallet before retrying."
        assert h.simulator.simulated == []

    @pytest.mark.asyncio
    async def test_missing_wallet(self):
        h = Harness()
        h.signer.address = ""
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))

        with pytest.raises(ValidationError):
            await h.lifecycle.simulate()
        assert h.lifecycle.state.step == S.QUOTE


class TestRiskGate:

    @pytest.mark.asyncio
    async def test_critical_risk_needs_explicit_confirmation(self):
        h = Harness()
        h.aggregator.price_impact = 12
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "20"))
        state = await h.lifecycle.simulate()
        assert state.risk.level == RiskLevel.CRITICAL

        with pytest.raises(ValidationError):
            await h.lifecycle.execute()
        assert h.lifecycle.state.step == S.SIMULATED
        assert h.signer.sent == []

        state = await h.lifecycle.execute(confirm_high_risk=True)
        assert state.step == S.COMPLETE

    @pytest.mark.asyncio
    async def test_copilot_cannot_override_critical_risk(self):
        h = Harness()
        h.aggregator.price_impact = 12
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "20"))
        await h.lifecycle.simulate()

        with pytest.raises(ValidationError):
            await h.lifecycle.dispatch(parse_copilot_action({"type": "execute_swap"}))
        assert h.signer.sent == []

    @pytest.mark.asyncio
    async def test_large_trade_alone_is_high_and_executes(self):
        h = Harness()
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "20"))
        state = await h.lifecycle.simulate()
        assert state.risk.level == RiskLevel.HIGH

        state = await h.lifecycle.execute()
        assert state.step == S.COMPLETE


class TestSingleShot:

    @pytest.mark.asyncio
    async def test_completed_swap_cannot_be_executed_again(self):
        h = Harness()
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))
        await h.lifecycle.simulate()
        await h.lifecycle.execute()

        with pytest.raises(InvalidTransitionError):
            await h.lifecycle.execute()
        assert len(h.signer.sent) == 1

    @pytest.mark.asyncio
    async def test_concurrent_execute_broadcasts_once(self):
        h = Harness()
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))
        await h.lifecycle.simulate()

        results = await asyncio.gather(
            h.lifecycle.execute(),
            h.lifecycle.execute(),
            return_exceptions=True,
        )

        assert len(h.signer.sent) == 1
        assert sum(isinstance(r, InvalidTransitionError) for r in results) == 1

    @pytest.mark.asyncio
    async def test_reset_is_refused_while_the_swap_is_signing(self):
        h = Harness()
        lc = h.lifecycle
        await lc.submit_intent(Intent("ETH", "USDC", "1"))
        await lc.simulate()
        h.signer.gate = asyncio.Event()

        pending = asyncio.ensure_future(lc.execute())
        await h.signer.started.wait()

        with pytest.raises(InvalidTransitionError):
            await lc.reset()
        assert lc.state.step == S.EXECUTING

        h.signer.gate.set()
        state = await pending

        assert state.step == S.COMPLETE
        assert state.tx_hash == "0xhash1"
        assert len(h.signer.sent) == 1

    @pytest.mark.asyncio
    async def test_reset_is_refused_while_the_approval_confirms(self):
        h = Harness(allowance=0)
        lc = h.lifecycle
        await lc.submit_intent(Intent("USDC", "ETH", "100"))
        await lc.simulate()
        h.receipts.gate = asyncio.Event()

        pending = asyncio.ensure_future(lc.approve())
        await h.receipts.started.wait()

        with pytest.raises(InvalidTransitionError):
            await lc.reset()
        assert lc.state.step == S.APPROVING

        h.receipts.gate.set()
        state = await pending

        assert state.step == S.SIMULATED
        assert len(h.simulator.simulated) == 1

    @pytest.mark.asyncio
    async def test_superseded_approval_skips_simulation(self):
        h = Harness(allowance=0)
        lc = h.lifecycle
        await lc.submit_intent(Intent("USDC", "ETH", "100"))
        await lc.simulate()

        def supersede() -> None:
            lc._state = dataclasses.replace(lc.state, generation=lc.state.generation + 1)

        h.on_sleep = supersede
        await lc.approve()

        assert h.sleeps == [3.0]
        assert h.simulator.simulated == []
        assert lc.state.step == S.APPROVING


class TestSupersession:

    @pytest.mark.asyncio
    async def test_newer_intent_wins(self):
        h = Harness()
        gate = asyncio.Event()
        h.aggregator.gates["1"] = gate

        first = asyncio.ensure_future(h.lifecycle.submit_intent(Intent("ETH", "USDC", "1")))
        await h.aggregator.started.wait()

        state = await h.lifecycle.submit_intent(Intent("ETH", "USDC", "2"))
        gate.set()
        await first

        assert state.step == S.QUOTE
        assert h.lifecycle.state.quote.intent.amount == "2"
        assert h.steps.count(S.QUOTE) == 1

    @pytest.mark.asyncio
    async def test_new_intent_cancels_pending_reset(self):
        h = Harness()
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))
        await h.lifecycle.simulate()
        await h.lifecycle.execute()

        state = await h.lifecycle.submit_intent(Intent("ETH", "USDC", "2"))
        await drain()

        assert state.step == S.QUOTE
        assert h.lifecycle.state.step == S.QUOTE

    @pytest.mark.asyncio
    async def test_refresh_invalidates_cached_quote(self):
        h = Harness()
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))

        state = await h.lifecycle.refresh_quote()

        assert state.step == S.QUOTE
        assert h.aggregator.invalidated == [Intent("ETH", "USDC", "1")]
        assert len(h.aggregator.calls) == 2

    @pytest.mark.asyncio
    async def test_change_slippage_requotes(self):
        h = Harness()
        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1", 50))

        state = await h.lifecycle.change_slippage(100)

        assert state.intent.slippage_bps == 100
        assert state.quote.min_out == compute_min_out(state.quote.amount_out, 100)

    @pytest.mark.asyncio
    async def test_modifying_without_a_swap(self):
        h = Harness()

        with pytest.raises(ValidationError):
            await h.lifecycle.change_slippage(100)
        with pytest.raises(ValidationError):
            await h.lifecycle.refresh_quote()


class TestDispatch:

    @pytest.mark.asyncio
    async def test_fetch_then_modify(self):
        h = Harness()
        lc = h.lifecycle

        fetch = parse_copilot_action(
            {"type": "fetch_quote", "params": {"tokenIn": "eth", "tokenOut": "usdc", "amount": "1"}}
        )
        state = await lc.dispatch(fetch)
        assert state.step == S.QUOTE
        assert state.intent.slippage_bps == 50

        modify = parse_copilot_action({"type": "modify_params", "params": {"slippage": 1}})
        state = await lc.dispatch(modify)
        assert state.intent.slippage_bps == 100
        assert state.intent.amount == "1"

        modify = parse_copilot_action({"type": "modify_params", "params": {"amount": "2"}})
        state = await lc.dispatch(modify)
        assert state.intent.amount == "2"
        assert state.intent.slippage_bps == 100

        state = await lc.dispatch(parse_copilot_action({"type": "simulate"}))
        assert state.step == S.SIMULATED

        state = await lc.dispatch(parse_copilot_action({"type": "execute_swap", "params": {}}))
        assert state.step == S.COMPLETE

    @pytest.mark.asyncio
    async def test_modify_without_intent(self):
        h = Harness()

        with pytest.raises(ValidationError):
            await h.lifecycle.dispatch(parse_copilot_action({"type": "modify_params", "params": {"slippage": 1}}))

    @pytest.mark.asyncio
    async def test_unknown_action(self):
        h = Harness()

        with pytest.raises(ValidationError):
            await h.lifecycle.dispatch(None)


class TestObservers:

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_the_swap(self):
        h = Harness()

        def broken(state: SwapState) -> None:
            raise RuntimeError("observer bug")

        h.lifecycle.subscribe(broken)
        state = await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))

        assert state.step == S.QUOTE

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        h = Harness()
        seen: List[SwapStep] = []
        unsubscribe = h.lifecycle.subscribe(lambda state: seen.append(state.step))

        await h.lifecycle.submit_intent(Intent("ETH", "USDC", "1"))
        unsubscribe()
        await h.lifecycle.reset()

        assert seen == [S.PARSED, S.QUOTE]
        assert h.lifecycle.state.step == S.INPUT
