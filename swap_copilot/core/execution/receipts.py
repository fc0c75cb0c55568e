"""Polls for transaction receipts after the wallet broadcasts."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from .models import TransactionResult, TransactionStatus
from ..errors import SwapError
from ...config import settings
from ...providers.rpc import RpcFailoverClient, get_rpc_client

logger = logging.getLogger(__name__)


class ReceiptWatcher:
    """Waits for a transaction to be mined, reverted, or time out."""

    def __init__(
        self,
        rpc: Optional[RpcFailoverClient] = None,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rpc = rpc or get_rpc_client()
        self.poll_interval = poll_interval or settings.receipt_poll_interval_seconds
        self.timeout = timeout or settings.receipt_timeout_seconds
        self._sleep = sleep
        self._clock = clock

    async def wait(self, tx_hash: str) -> TransactionResult:
        result = TransactionResult(tx_hash=tx_hash)
        start = self._clock()

        while True:
            if self._clock() - start > self.timeout:
                result.status = TransactionStatus.TIMEOUT
                result.error = f"Confirmation timeout after {self.timeout:g}s"
                return result

            try:
                receipt = await self.rpc.call("eth_getTransactionReceipt", [tx_hash])
            except SwapError as e:
                logger.warning("Error checking transaction status for %s: %s", tx_hash, e)
                receipt = None

            if receipt:
                result.block_number = int(receipt.get("blockNumber", "0x0"), 16)
                result.gas_used = int(receipt.get("gasUsed", "0x0"), 16)

                # Check status (0x1 = success, 0x0 = revert)
                if int(receipt.get("status", "0x1"), 16) == 0:
                    result.status = TransactionStatus.REVERTED
                    result.error = "Transaction reverted"
                    logger.warning("Transaction reverted: %s (block %s)", tx_hash, result.block_number)
                    return result

                result.status = TransactionStatus.CONFIRMED
                result.confirmed_at = datetime.now(timezone.utc)
                logger.info("Transaction confirmed: %s (block %s)", tx_hash, result.block_number)
                return result

            await self._sleep(self.poll_interval)
