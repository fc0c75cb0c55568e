"""
Input validation and address derivation.

Free text from a user (or an upstream LLM) is screened before it reaches the
intent parser, and every contract address that ends up in a transaction is
re-derived from a token symbol and checked against a fixed whitelist. Client
supplied addresses are never trusted.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple

from ..errors import SecurityViolation, UnknownTokenSymbol
from ..swap.constants import CONTRACT_WHITELIST, TOKENS
from ...logging_config import log_security_event

logger = logging.getLogger(__name__)

MAX_INPUT_LENGTH = 500

PROMPT_INJECTION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"ignore\s+(all\s+)?(previous|above|prior)\s+instructions?", re.IGNORECASE),
    re.compile(r"system\s*:\s*", re.IGNORECASE),
    re.compile(r"you\s+are\s+(now|a)\s+", re.IGNORECASE),
    re.compile(r"assistant\s*:\s*", re.IGNORECASE),
    re.compile(r"<\s*script[^>]*>", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"on\w+\s*=\s*['\"]", re.IGNORECASE),
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"execute\s+code", re.IGNORECASE),
    re.compile(r"bypass\s+filter", re.IGNORECASE),
    re.compile(r"override\s+instructions", re.IGNORECASE),
)

SQL_INJECTION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"(\bor\b|\band\b)\s+['\"0-9]", re.IGNORECASE),
    re.compile(r"union\s+select", re.IGNORECASE),
    re.compile(r"drop\s+table", re.IGNORECASE),
    re.compile(r"--\s*$"),
    re.compile(r"/\*.*\*/"),
    re.compile(r"xp_cmdshell", re.IGNORECASE),
)

# Zero-width, bidi override and C0 control characters.
SUSPICIOUS_UNICODE_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile("[\u200b-\u200d\ufeff]"),
    re.compile("[\u202a-\u202e]"),
    re.compile("[\u0000-\u001f]"),
)

ADDRESS_PATTERN = re.compile(r"0x[a-fA-F0-9]{40}")
URL_PATTERN = re.compile(r"https?://")

_WHITELIST = frozenset(address.lower() for address in CONTRACT_WHITELIST)


@dataclass(frozen=True)
class InputValidation:
    valid: bool
    sanitized: str
    reason: Optional[str] = None


def validate_input(text: str, identifier: str = "anonymous") -> InputValidation:
    """Screen free text. Any match blocks the whole input.

    Rejections are logged as ``blocked_input`` against ``identifier``.
    """

    if len(text) > MAX_INPUT_LENGTH:
        reason = f"Input too long (max {MAX_INPUT_LENGTH} characters)"
        log_security_event("blocked_input", identifier, reason, length=len(text))
        return InputValidation(valid=False, reason=reason, sanitized=text[:MAX_INPUT_LENGTH])

    sanitized = text
    for pattern in SUSPICIOUS_UNICODE_PATTERNS:
        sanitized = pattern.sub("", sanitized)

    checks = (
        (PROMPT_INJECTION_PATTERNS, "Potential prompt injection detected"),
        (SQL_INJECTION_PATTERNS, "Potential SQL injection detected"),
        ((ADDRESS_PATTERN,), "Direct addresses not allowed"),
        ((URL_PATTERN,), "URLs not allowed"),
    )
    for patterns, reason in checks:
        if any(pattern.search(sanitized) for pattern in patterns):
            log_security_event("blocked_input", identifier, reason)
            return InputValidation(valid=False, reason=reason, sanitized=sanitized)

    return InputValidation(valid=True, sanitized=sanitized)


def derive_token_address(symbol: str) -> str:
    """Resolve a token symbol to its canonical address."""

    token = TOKENS.get(symbol.upper()) if symbol else None
    if token is None:
        raise UnknownTokenSymbol(symbol)
    return str(token["address"])


def validate_contract_address(address: Optional[str]) -> bool:
    if not address:
        return False
    return address.lower() in _WHITELIST


def _reject(label: str, value: str, identifier: str) -> SecurityViolation:
    log_security_event("invalid_contract", identifier, f"{label}: {value}")
    return SecurityViolation(f"{label}: {value}", value=value)


def validate_swap_addresses(
    to: str,
    token_in_symbol: str,
    token_out_symbol: str,
    spender: Optional[str] = None,
    identifier: str = "server",
) -> None:
    """Assert router, spender and both token addresses are whitelisted.

    Raises on the first violation, naming the offending value.
    """

    if not validate_contract_address(to):
        raise _reject("Invalid router address", to, identifier)

    if spender and not validate_contract_address(spender):
        raise _reject("Invalid spender address", spender, identifier)

    token_in_address = derive_token_address(token_in_symbol)
    token_out_address = derive_token_address(token_out_symbol)

    if not validate_contract_address(token_in_address):
        raise _reject("Token not whitelisted", token_in_symbol, identifier)
    if not validate_contract_address(token_out_address):
        raise _reject("Token not whitelisted", token_out_symbol, identifier)
