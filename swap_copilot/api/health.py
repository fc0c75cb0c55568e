from typing import Any, Dict

from fastapi import APIRouter

from ..providers.coingecko import CoingeckoProvider
from ..providers.rpc import get_rpc_client
from ..providers.tenderly import TenderlyProvider

router = APIRouter()


@router.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """Health of the RPC providers plus the optional simulation and market data services"""

    provider_status: Dict[str, Any] = {
        "rpc": await get_rpc_client().health_check(),
        "tenderly": await TenderlyProvider().health_check(),
        "coingecko": await CoingeckoProvider().health_check(),
    }

    rpc_status = provider_status["rpc"]["status"]
    available_providers = sum(
        1 for status in provider_status.values()
        if status["status"] in ("healthy", "configured")
    )

    return {
        "status": "healthy" if rpc_status == "healthy" else "degraded",
        "providers": provider_status,
        "available_providers": available_providers,
        "total_providers": len(provider_status),
    }
