"""Static chain configuration: tokens, variants, contract whitelist, fee tiers."""

from __future__ import annotations

from typing import Dict, Tuple

from eth_utils import function_signature_to_4byte_selector

CHAIN_ID = 8453  # Base mainnet

# Sentinel address wallets and aggregators use for the native asset.
NATIVE_PLACEHOLDER = '0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE'

UNISWAP_CONTRACTS: Dict[str, str] = {
    'SwapRouter02': '0x2626664c2603336E57B271c5C0b26F421741e481',
    'QuoterV2': '0x3d4e44Eb1374240CE5F1B871ab261CD16335B76a',
}

SWAP_ROUTER = UNISWAP_CONTRACTS['SwapRouter02']
QUOTER_V2 = UNISWAP_CONTRACTS['QuoterV2']

# Symbol → token metadata. This table is the only path from a symbol to an address.
TOKENS: Dict[str, Dict[str, object]] = {
    'ETH': {
        'symbol': 'ETH',
        'address': NATIVE_PLACEHOLDER,
        'decimals': 18,
        'name': 'Ethereum',
        'is_native': True,
    },
    'WETH': {
        'symbol': 'WETH',
        'address': '0x4200000000000000000000000000000000000006',
        'decimals': 18,
        'name': 'Wrapped Ether',
        'is_native': False,
    },
    'USDC': {
        'symbol': 'USDC',
        'address': '0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913',
        'decimals': 6,
        'name': 'USD Coin',
        'is_native': False,
    },
    'USDBC': {
        'symbol': 'USDbC',
        'address': '0xd9aAEc86B65D86f6A7B5B1b0c42FFA531710b6CA',
        'decimals': 6,
        'name': 'USD Base Coin (bridged)',
        'is_native': False,
    },
}

# Symbols a requested symbol is quoted through, in attempt order.
TOKEN_VARIANTS: Dict[str, Tuple[str, ...]] = {
    'ETH': ('ETH',),
    'WETH': ('WETH',),
    'USDC': ('USDC', 'USDBC'),
    'USDBC': ('USDBC',),
}

STABLE_SYMBOLS = frozenset({'USDC', 'USDBC'})

# Native ETH is routed through the wrapped pool token.
POOL_TOKEN_FOR_NATIVE = 'WETH'

FEE_TIERS: Tuple[int, ...] = (500, 3000, 10000)

CONTRACT_WHITELIST: Tuple[str, ...] = (
    UNISWAP_CONTRACTS['SwapRouter02'],
    UNISWAP_CONTRACTS['QuoterV2'],
    TOKENS['WETH']['address'],  # type: ignore[misc]
    TOKENS['USDC']['address'],  # type: ignore[misc]
    TOKENS['USDBC']['address'],  # type: ignore[misc]
    NATIVE_PLACEHOLDER,
)

# Maximum uint256 for unlimited approval
MAX_UINT256 = 2**256 - 1

DEFAULT_SWAP_GAS = 200_000


def _selector(signature: str) -> str:
    return '0x' + function_signature_to_4byte_selector(signature).hex()


QUOTE_EXACT_INPUT_SINGLE_SELECTOR = _selector(
    'quoteExactInputSingle((address,address,uint256,uint24,uint160))'
)
EXACT_INPUT_SINGLE_SELECTOR = _selector(
    'exactInputSingle((address,address,uint24,address,uint256,uint256,uint160))'
)
ERC20_APPROVE_SELECTOR = _selector('approve(address,uint256)')
ERC20_ALLOWANCE_SELECTOR = _selector('allowance(address,address)')

__all__ = [
    'CHAIN_ID',
    'NATIVE_PLACEHOLDER',
    'UNISWAP_CONTRACTS',
    'SWAP_ROUTER',
    'QUOTER_V2',
    'TOKENS',
    'TOKEN_VARIANTS',
    'STABLE_SYMBOLS',
    'POOL_TOKEN_FOR_NATIVE',
    'FEE_TIERS',
    'CONTRACT_WHITELIST',
    'MAX_UINT256',
    'DEFAULT_SWAP_GAS',
    'QUOTE_EXACT_INPUT_SINGLE_SELECTOR',
    'EXACT_INPUT_SINGLE_SELECTOR',
    'ERC20_APPROVE_SELECTOR',
    'ERC20_ALLOWANCE_SELECTOR',
]
