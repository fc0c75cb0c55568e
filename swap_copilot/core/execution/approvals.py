"""ERC-20 allowance checks."""

import logging
from typing import Optional

from eth_utils import is_address

from .models import AllowanceCheck
from ..errors import SecurityViolation, ValidationError
from ..security.gate import validate_contract_address
from ..swap.abi import decode_words, encode_address, encode_call
from ..swap.constants import ERC20_ALLOWANCE_SELECTOR
from ...providers.rpc import RpcFailoverClient, get_rpc_client

logger = logging.getLogger(__name__)


class ApprovalChecker:
    """Reads ``allowance(owner, spender)`` through the failover RPC client."""

    def __init__(self, rpc: Optional[RpcFailoverClient] = None):
        self.rpc = rpc or get_rpc_client()

    async def allowance(self, token_address: str, owner_address: str, spender_address: str) -> int:
        if not validate_contract_address(token_address):
            raise SecurityViolation(f"Invalid token address: {token_address}", value=token_address)
        if not validate_contract_address(spender_address):
            raise SecurityViolation(f"Invalid spender address: {spender_address}", value=spender_address)
        if not owner_address or not is_address(owner_address):
            raise ValidationError("Invalid owner address")

        calldata = encode_call(
            ERC20_ALLOWANCE_SELECTOR,
            encode_address(owner_address),
            encode_address(spender_address),
        )
        result = await self.rpc.eth_call(token_address, calldata)
        try:
            return decode_words(result)[0]
        except (ValueError, TypeError):
            raise ValidationError("Token returned a malformed allowance") from None

    async def check(
        self,
        token_address: str,
        owner_address: str,
        spender_address: str,
        amount: int,
    ) -> AllowanceCheck:
        if amount < 0:
            raise ValidationError("Amount cannot be negative")

        allowance = await self.allowance(token_address, owner_address, spender_address)
        needs_approval = allowance < amount
        logger.debug("Allowance %d vs required %d (needs_approval=%s)", allowance, amount, needs_approval)
        return AllowanceCheck(allowance=allowance, needs_approval=needs_approval)
