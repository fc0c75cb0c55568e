import os

from pathlib import Path
from typing import Any, Dict, List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the frontend-style Alchemy key name when the server one is unset."""

        super().model_post_init(__context)

        if not self.alchemy_api_key:
            fallback = os.getenv("NEXT_PUBLIC_ALCHEMY_API_KEY")
            if fallback:
                object.__setattr__(self, "alchemy_api_key", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Chain
    chain_id: int = Field(default=8453, description="EVM chain the router and quoter live on (Base mainnet)")

    # RPC Providers
    alchemy_api_key: str = Field(default="", description="Alchemy API key (highest priority RPC)")
    base_public_rpc_url: str = Field(default="https://mainnet.base.org", description="Base public RPC endpoint")
    llama_rpc_url: str = Field(default="https://base.llamarpc.com", description="LlamaRPC Base endpoint")
    rpc_timeout_seconds: float = Field(default=10.0, description="Per-request RPC timeout")
    rpc_max_retries: int = Field(default=3, ge=1, description="Attempts per RPC provider before failing over")
    rpc_backoff_base_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Backoff unit; attempt N waits 2**N * base before retrying the same provider",
    )

    # Quotes
    quoter_local_retries: int = Field(default=2, ge=0, description="Extra attempts per quoter call on transport failure")
    quote_cache_ttl_seconds: int = Field(default=30, ge=1, description="Quote cache TTL in seconds")
    default_slippage_bps: int = Field(default=50, ge=0, le=5000, description="Default slippage tolerance in basis points")
    max_slippage_bps: int = Field(default=5000, ge=0, le=10000, description="Largest slippage a caller may request")

    # Cache Settings
    max_cache_size: int = Field(default=1000, description="Maximum in-memory cache entries")
    redis_url: str = Field(
        default="",
        description="Redis connection string; when set, quote cache and rate limits are shared across instances",
    )

    # Rate Limiting
    rate_limit_max_requests: int = Field(default=20, ge=1, description="Requests allowed per window per caller")
    rate_limit_window_seconds: float = Field(default=60.0, gt=0, description="Fixed rate-limit window length")
    rate_limit_sweep_probability: float = Field(
        default=0.1,
        ge=0,
        le=1,
        description="Chance per check of evicting expired rate-limit records",
    )

    # Simulation (Tenderly)
    tenderly_account: str = Field(default="", description="Tenderly account slug")
    tenderly_project: str = Field(default="", description="Tenderly project slug")
    tenderly_access_key: str = Field(
        default="",
        description="Tenderly access key",
        validation_alias=AliasChoices("tenderly_access_key", "TENDERLY_ACCESS_KEY", "TENDERLY_KEY"),
    )
    simulation_timeout_seconds: float = Field(default=20.0, description="Simulation request timeout")

    # Market data
    coingecko_api_key: str = Field(default="", description="Coingecko API key")
    enable_coingecko: bool = Field(default=True, description="Enable Coingecko market data")
    fallback_eth_price_usd: float = Field(default=3900.0, description="ETH price used when market data is missing")
    base_gas_price_gwei: float = Field(
        default=0.001,
        description="Fixed Base gas price used for gas-to-USD conversion (no live oracle)",
    )

    # Lifecycle
    approval_settle_seconds: float = Field(default=3.0, ge=0, description="Wait after an approval confirms before re-simulating")
    auto_reset_seconds: float = Field(default=5.0, ge=0, description="Delay before a completed swap resets to input")
    receipt_poll_interval_seconds: float = Field(default=2.0, gt=0, description="Receipt polling interval")
    receipt_timeout_seconds: float = Field(default=300.0, gt=0, description="Give up waiting for a receipt after this long")

    @property
    def has_alchemy_key(self) -> bool:
        return bool(self.alchemy_api_key)

    @property
    def has_tenderly(self) -> bool:
        return bool(self.tenderly_account and self.tenderly_project and self.tenderly_access_key)

    def rpc_providers(self) -> List[Dict[str, Any]]:
        """RPC endpoints in priority order; unconfigured ones are dropped."""

        providers = [
            {
                "name": "Alchemy",
                "url": (
                    f"https://base-mainnet.g.alchemy.com/v2/{self.alchemy_api_key}"
                    if self.alchemy_api_key
                    else ""
                ),
                "priority": 1,
            },
            {"name": "Base Public RPC", "url": self.base_public_rpc_url, "priority": 2},
            {"name": "LlamaRPC", "url": self.llama_rpc_url, "priority": 3},
        ]
        return [p for p in providers if p["url"]]


# Global settings instance
settings = Settings()
