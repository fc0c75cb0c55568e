import logging
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.errors import SimulationUnavailable
from .base import Provider

logger = logging.getLogger(__name__)


class TenderlyProvider(Provider):
    """Tenderly simulation API (quick simulations, not saved)"""

    name = "tenderly"
    unavailable_reason = "Tenderly credentials not configured"

    def __init__(
        self,
        account: Optional[str] = None,
        project: Optional[str] = None,
        access_key: Optional[str] = None,
        network_id: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account = account if account is not None else settings.tenderly_account
        self.project = project if project is not None else settings.tenderly_project
        self.access_key = access_key if access_key is not None else settings.tenderly_access_key
        self.network_id = str(network_id or settings.chain_id)
        self.timeout_s = settings.simulation_timeout_seconds
        self.base_url = "https://api.tenderly.co/api/v1"
        self._transport = transport

    @property
    def simulate_url(self) -> str:
        return f"{self.base_url}/account/{self.account}/project/{self.project}/simulate"

    async def ready(self) -> bool:
        return bool(self.account and self.project and self.access_key)

    async def simulate(self, from_address: str, to_address: str, data: str, value: int = 0) -> Dict[str, Any]:
        """Run a quick simulation and return the ``transaction`` object of the response."""

        if not await self.ready():
            raise SimulationUnavailable(self.unavailable_reason)

        payload = {
            "network_id": self.network_id,
            "from": from_address,
            "to": to_address,
            "input": data,
            "value": str(value),
            "save": False,
            "simulation_type": "quick",
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    self.simulate_url,
                    json=payload,
                    headers={"Content-Type": "application/json", "X-Access-Key": self.access_key},
                )
        except httpx.HTTPError as e:
            raise SimulationUnavailable(f"Tenderly request failed: {type(e).__name__}") from e

        if not response.is_success:
            # Body may echo request details; keep it out of client-facing errors.
            logger.error("Tenderly API error %d: %s", response.status_code, response.text[:500])
            raise SimulationUnavailable(f"Tenderly returned {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise SimulationUnavailable("Tenderly returned a non-JSON body") from e

        transaction = body.get("transaction")
        if not isinstance(transaction, dict):
            raise SimulationUnavailable("Tenderly response missing transaction")
        return transaction
