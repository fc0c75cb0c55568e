"""
Transaction builder for swap and approval calldata.

Addresses placed in calldata are always re-derived from token symbols or
taken from the contract whitelist. Nothing here signs or broadcasts.
"""

import secrets
from decimal import Decimal
from typing import Optional, Union

from eth_utils import is_address, to_checksum_address

from .models import PreparedTransaction, TransactionType
from ..errors import SecurityViolation, ValidationError
from ..security.gate import validate_contract_address, validate_swap_addresses
from ..swap.abi import encode_address, encode_call, encode_uint256
from ..swap.constants import (
    CHAIN_ID,
    DEFAULT_SWAP_GAS,
    ERC20_APPROVE_SELECTOR,
    EXACT_INPUT_SINGLE_SELECTOR,
    FEE_TIERS,
    MAX_UINT256,
    SWAP_ROUTER,
    TOKENS,
)
from ..swap.models import Quote, TokenVariant, to_base_units
from ...logging_config import log_security_event

# Headroom applied to the quoter's gas estimate
GAS_HEADROOM_NUMERATOR = 12
GAS_HEADROOM_DENOMINATOR = 10

_TOKEN_ADDRESSES = frozenset(str(t["address"]).lower() for t in TOKENS.values() if not t.get("is_native"))


def _require_wallet_address(address: Optional[str], label: str) -> str:
    if not address or not is_address(address):
        raise ValidationError(f"Invalid {label} address")
    return to_checksum_address(address)


def encode_exact_input_single(
    token_in: str,
    token_out: str,
    fee: int,
    recipient: str,
    amount_in: int,
    amount_out_minimum: int,
) -> str:
    """SwapRouter02 exactInputSingle((tokenIn, tokenOut, fee, recipient, amountIn, amountOutMinimum, sqrtPriceLimitX96))."""
    return encode_call(
        EXACT_INPUT_SINGLE_SELECTOR,
        encode_address(token_in),
        encode_address(token_out),
        encode_uint256(fee),
        encode_address(recipient),
        encode_uint256(amount_in),
        encode_uint256(amount_out_minimum),
        encode_uint256(0),
    )


class TransactionBuilder:
    """
    Builds unsigned transactions for the wallet.

    Handles:
    - Swaps from an aggregated quote
    - Swaps from explicit HTTP parameters
    - ERC20 approvals
    """

    @staticmethod
    def generate_tx_id() -> str:
        """Generate a unique transaction ID."""
        return f"tx_{secrets.token_hex(16)}"

    @staticmethod
    def _build_swap(
        token_in_symbol: str,
        token_out_symbol: str,
        amount_in: int,
        fee_tier: int,
        min_out: int,
        recipient: str,
        gas_limit: int,
        quote_key: Optional[str] = None,
    ) -> PreparedTransaction:
        recipient = _require_wallet_address(recipient, "recipient")

        if fee_tier not in FEE_TIERS:
            raise ValidationError(f"Unsupported fee tier: {fee_tier}")
        if amount_in <= 0:
            raise ValidationError("Amount must be a positive number")
        if min_out < 0:
            raise ValidationError("Minimum output cannot be negative")

        validate_swap_addresses(
            to=SWAP_ROUTER,
            token_in_symbol=token_in_symbol,
            token_out_symbol=token_out_symbol,
            identifier=recipient,
        )

        token_in = TokenVariant.from_symbol(token_in_symbol)
        token_out = TokenVariant.from_symbol(token_out_symbol)
        pool_in, pool_out = token_in.pool_token(), token_out.pool_token()
        if pool_in.address == pool_out.address:
            raise ValidationError("Input and output tokens must differ")

        calldata = encode_exact_input_single(
            token_in=pool_in.address,
            token_out=pool_out.address,
            fee=fee_tier,
            recipient=recipient,
            amount_in=amount_in,
            amount_out_minimum=min_out,
        )

        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            tx_type=TransactionType.SWAP,
            chain_id=CHAIN_ID,
            from_address=recipient,
            to_address=SWAP_ROUTER,
            data=calldata,
            value=amount_in if token_in.is_native else 0,
            gas_limit=gas_limit,
            description=f"Swap {token_in.symbol} -> {token_out.symbol}",
            quote_key=quote_key,
        )

    @staticmethod
    def build_swap(quote: Quote, recipient: str) -> PreparedTransaction:
        """
        Build the router call for an aggregated quote.

        Args:
            quote: The chosen route; its fee tier and min_out are used as-is
            recipient: Wallet that sends the transaction and receives output

        Returns:
            PreparedTransaction ready to be signed
        """
        gas_limit = max(
            DEFAULT_SWAP_GAS,
            quote.gas_estimate * GAS_HEADROOM_NUMERATOR // GAS_HEADROOM_DENOMINATOR,
        )
        return TransactionBuilder._build_swap(
            token_in_symbol=quote.token_in.key,
            token_out_symbol=quote.token_out.key,
            amount_in=quote.amount_in,
            fee_tier=quote.fee_tier,
            min_out=quote.min_out,
            recipient=recipient,
            gas_limit=gas_limit,
            quote_key=quote.request_key,
        )

    @staticmethod
    def build_swap_from_params(
        token_in_symbol: str,
        token_out_symbol: str,
        amount_in: Union[str, Decimal],
        fee_tier: int,
        min_output: int,
        recipient: str,
    ) -> PreparedTransaction:
        """
        Build a swap from explicit parameters.

        Only symbols are taken from the caller; pool addresses are re-derived.

        Args:
            amount_in: Human-readable input amount (e.g. "1.5")
            min_output: Minimum output in base units of the output pool token
        """
        try:
            amount = Decimal(str(amount_in))
        except ArithmeticError:
            raise ValidationError(f"Invalid amount: {amount_in}") from None
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Amount must be a positive number")

        pool_in = TokenVariant.from_symbol(token_in_symbol).pool_token()

        return TransactionBuilder._build_swap(
            token_in_symbol=token_in_symbol,
            token_out_symbol=token_out_symbol,
            amount_in=to_base_units(amount, pool_in.decimals),
            fee_tier=fee_tier,
            min_out=min_output,
            recipient=recipient,
            gas_limit=DEFAULT_SWAP_GAS,
        )

    @staticmethod
    def build_approval(
        token_address: str,
        spender_address: str,
        amount: Optional[int] = None,
        owner_address: Optional[str] = None,
    ) -> PreparedTransaction:
        """
        Build an ERC20 approval transaction.

        Args:
            token_address: The ERC20 token contract (must be a whitelisted token)
            spender_address: The address being approved to spend (must be whitelisted)
            amount: The amount to approve (default: unlimited)
            owner_address: The token owner, if known

        Returns:
            PreparedTransaction ready to be signed
        """
        identifier = owner_address or "anonymous"
        if not token_address or token_address.lower() not in _TOKEN_ADDRESSES:
            log_security_event("invalid_contract", identifier, f"Invalid token address: {token_address}")
            raise SecurityViolation(f"Invalid token address: {token_address}", value=token_address)
        if not validate_contract_address(spender_address) or spender_address.lower() in _TOKEN_ADDRESSES:
            log_security_event("invalid_contract", identifier, f"Invalid spender address: {spender_address}")
            raise SecurityViolation(f"Invalid spender address: {spender_address}", value=spender_address)

        approval_amount = MAX_UINT256 if amount is None else amount
        if approval_amount < 0 or approval_amount > MAX_UINT256:
            raise ValidationError("Approval amount out of range")

        # Encode: approve(address spender, uint256 amount)
        calldata = encode_call(
            ERC20_APPROVE_SELECTOR,
            encode_address(spender_address),
            encode_uint256(approval_amount),
        )

        return PreparedTransaction(
            tx_id=TransactionBuilder.generate_tx_id(),
            tx_type=TransactionType.APPROVE,
            chain_id=CHAIN_ID,
            from_address=owner_address,
            to_address=to_checksum_address(token_address),
            data=calldata,
            value=0,
            description=f"Approve {spender_address[:10]}... to spend tokens",
        )
