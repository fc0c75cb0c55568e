from typing import Any, Dict, Optional, Union

from eth_utils import is_address, to_checksum_address
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.errors import SecurityViolation, ValidationError
from ..core.execution.approvals import ApprovalChecker
from ..core.execution.models import PreparedTransaction, TransactionType
from ..core.execution.simulation import SimulationGateway
from ..core.execution.tx_builder import TransactionBuilder
from ..core.security.gate import validate_contract_address
from ..core.swap.constants import CHAIN_ID, SWAP_ROUTER
from ..core.swap.models import Intent, TokenVariant
from ..core.swap.quotes import QuoteAggregator, get_quote_aggregator
from ..config import settings

router = APIRouter()


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def _uint_string(value: Union[str, int]) -> int:
    try:
        parsed = int(str(value), 0) if isinstance(value, str) and value.startswith("0x") else int(str(value))
    except ValueError:
        raise ValueError("must be an integer") from None
    if parsed < 0:
        raise ValueError("must not be negative")
    return parsed


class TokenRef(BaseModel):
    """Token descriptor as echoed back by get-quote. Only ``symbol`` is read."""

    model_config = ConfigDict(extra="ignore")

    symbol: str


class QuoteRequest(_Request):
    token_in: str = Field(alias="tokenIn", description="Input token symbol")
    token_out: str = Field(alias="tokenOut", description="Output token symbol")
    amount_in: Union[str, float] = Field(alias="amountIn", description="Human-readable input amount")
    slippage: Optional[float] = Field(default=None, ge=0, le=50, description="Slippage tolerance in percent")
    slippage_bps: Optional[int] = Field(default=None, alias="slippageBps", ge=0, description="Slippage in basis points")

    def resolved_slippage_bps(self) -> int:
        if self.slippage_bps is not None:
            return self.slippage_bps
        if self.slippage is not None:
            return int(round(self.slippage * 100))
        return settings.default_slippage_bps


class BuildApprovalRequest(_Request):
    token_address: str = Field(alias="tokenAddress")
    spender_address: str = Field(alias="spenderAddress")
    amount: Optional[Union[str, int]] = None
    owner_address: Optional[str] = Field(default=None, alias="ownerAddress")

    @field_validator("amount")
    @classmethod
    def _amount(cls, value: Optional[Union[str, int]]) -> Optional[int]:
        return None if value in (None, "") else _uint_string(value)


class CheckApprovalRequest(_Request):
    token_address: str = Field(alias="tokenAddress")
    owner_address: str = Field(alias="ownerAddress")
    spender_address: str = Field(alias="spenderAddress")
    amount: Union[str, int]

    @field_validator("amount")
    @classmethod
    def _amount(cls, value: Union[str, int]) -> int:
        return _uint_string(value)


class BuildSwapRequest(_Request):
    token_in: Union[str, TokenRef] = Field(alias="tokenIn")
    token_out: Union[str, TokenRef] = Field(alias="tokenOut")
    amount_in: Union[str, float] = Field(alias="amountIn")
    fee_tier: int = Field(alias="feeTier")
    min_output: Union[str, int] = Field(alias="minOutput")
    from_address: str = Field(alias="from")

    @field_validator("min_output")
    @classmethod
    def _min_output(cls, value: Union[str, int]) -> int:
        return _uint_string(value)

    @staticmethod
    def _symbol(token: Union[str, TokenRef]) -> str:
        return token.symbol if isinstance(token, TokenRef) else token

    @property
    def token_in_symbol(self) -> str:
        return self._symbol(self.token_in)

    @property
    def token_out_symbol(self) -> str:
        return self._symbol(self.token_out)


class SimulateRequest(_Request):
    from_address: str = Field(alias="from")
    to: str
    data: str
    value: Union[str, int] = "0"

    @field_validator("data")
    @classmethod
    def _data(cls, value: str) -> str:
        if not value.startswith("0x") or len(value) % 2:
            raise ValueError("data must be 0x-prefixed hex")
        int(value[2:] or "0", 16)
        return value

    @field_validator("value")
    @classmethod
    def _value(cls, value: Union[str, int]) -> int:
        return _uint_string(value)


def get_approval_checker() -> ApprovalChecker:
    return ApprovalChecker()


def get_simulation_gateway() -> SimulationGateway:
    return SimulationGateway()


@router.post("/get-quote")
async def post_get_quote(
    req: QuoteRequest,
    aggregator: QuoteAggregator = Depends(get_quote_aggregator),
) -> Dict[str, Any]:
    """Best route across fee tiers and token variants."""
    intent = Intent(
        token_in_symbol=req.token_in,
        token_out_symbol=req.token_out,
        amount=str(req.amount_in),
        slippage_bps=req.resolved_slippage_bps(),
    )
    quote = await aggregator.get_quote(intent)
    return quote.to_response()


@router.post("/build-approval")
async def post_build_approval(req: BuildApprovalRequest) -> Dict[str, Any]:
    tx = TransactionBuilder.build_approval(
        token_address=req.token_address,
        spender_address=req.spender_address,
        amount=req.amount,
        owner_address=req.owner_address,
    )
    return tx.to_response()


@router.post("/check-approval")
async def post_check_approval(
    req: CheckApprovalRequest,
    approvals: ApprovalChecker = Depends(get_approval_checker),
) -> Dict[str, Any]:
    result = await approvals.check(
        token_address=req.token_address,
        owner_address=req.owner_address,
        spender_address=req.spender_address,
        amount=req.amount,
    )
    return result.to_response()


@router.post("/build-swap")
async def post_build_swap(req: BuildSwapRequest) -> Dict[str, Any]:
    """Router calldata. Token addresses in the request are ignored and re-derived."""
    tx = TransactionBuilder.build_swap_from_params(
        token_in_symbol=req.token_in_symbol,
        token_out_symbol=req.token_out_symbol,
        amount_in=str(req.amount_in),
        fee_tier=req.fee_tier,
        min_output=req.min_output,
        recipient=req.from_address,
    )
    token_in = TokenVariant.from_symbol(req.token_in_symbol)
    response = tx.to_response()
    response["tokenIn"] = {"symbol": token_in.symbol, "address": token_in.pool_token().address}
    return response


@router.post("/simulate")
async def post_simulate(
    req: SimulateRequest,
    gateway: SimulationGateway = Depends(get_simulation_gateway),
) -> Dict[str, Any]:
    """Dry-run a transaction against a whitelisted contract."""
    if not is_address(req.from_address):
        raise ValidationError("Invalid sender address")
    if not validate_contract_address(req.to):
        raise SecurityViolation(f"Invalid contract address: {req.to}", value=req.to)

    to_address = to_checksum_address(req.to)
    tx = PreparedTransaction(
        tx_id=TransactionBuilder.generate_tx_id(),
        tx_type=TransactionType.SWAP if to_address.lower() == SWAP_ROUTER.lower() else TransactionType.APPROVE,
        chain_id=CHAIN_ID,
        from_address=to_checksum_address(req.from_address),
        to_address=to_address,
        data=req.data,
        value=req.value,
    )
    result = await gateway.simulate(tx)
    return result.to_response()
