"""
Copilot actions.

An upstream assistant replies with ``{"message": str, "action": {...}}``.
The action is validated against a closed set of shapes; anything unknown or
malformed yields no action at all.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)


def _positive_decimal(value: str) -> str:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError("amount must be a decimal string") from None
    if not amount.is_finite() or amount <= 0:
        raise ValueError("amount must be positive")
    return str(value)


class FetchQuoteParams(_Strict):
    token_in: str = Field(alias="tokenIn", min_length=1, max_length=16)
    token_out: str = Field(alias="tokenOut", min_length=1, max_length=16)
    amount: str

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: str) -> str:
        return _positive_decimal(value)


class ModifyParams(_Strict):
    amount: Optional[str] = None
    slippage: Optional[float] = Field(default=None, ge=0, le=50, description="Percent, e.g. 0.5")

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _positive_decimal(value)

    @model_validator(mode="after")
    def _require_change(self) -> "ModifyParams":
        if self.amount is None and self.slippage is None:
            raise ValueError("modify_params needs amount or slippage")
        return self


class _NoParams(_Strict):
    pass


class FetchQuoteAction(_Strict):
    type: Literal["fetch_quote"]
    params: FetchQuoteParams


class ModifyParamsAction(_Strict):
    type: Literal["modify_params"]
    params: ModifyParams


class SimulateAction(_Strict):
    type: Literal["simulate"]
    params: _NoParams = Field(default_factory=_NoParams)


class ExecuteSwapAction(_Strict):
    type: Literal["execute_swap"]
    params: _NoParams = Field(default_factory=_NoParams)


CopilotAction = Annotated[
    Union[FetchQuoteAction, ModifyParamsAction, SimulateAction, ExecuteSwapAction],
    Field(discriminator="type"),
]

_action_adapter: TypeAdapter[CopilotAction] = TypeAdapter(CopilotAction)


class CopilotReply(BaseModel):
    message: str
    action: Optional[CopilotAction] = None


def parse_copilot_action(data: Any) -> Optional[CopilotAction]:
    """Validate a decoded action object. Returns None unless it is exactly a known shape."""

    if data is None:
        return None
    try:
        return _action_adapter.validate_python(data)
    except PydanticValidationError as e:
        logger.info("Rejected copilot action: %d validation error(s)", e.error_count())
        return None


def _strip_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```") and stripped.endswith("```") and len(stripped) >= 6:
        body = stripped[3:-3]
        first_newline = body.find("\n")
        # Drop a language tag such as ```json
        if first_newline != -1 and body[:first_newline].strip().isalpha():
            body = body[first_newline + 1:]
        return body.strip()
    return stripped


def parse_copilot_response(text: str) -> CopilotReply:
    """Parse a raw assistant reply.

    The whole reply must be one JSON object. Otherwise it is treated as a
    plain message with no action.
    """

    try:
        payload = json.loads(_strip_fence(text))
    except ValueError:
        return CopilotReply(message=text, action=None)

    if not isinstance(payload, dict):
        return CopilotReply(message=text, action=None)

    message = payload.get("message")
    if not isinstance(message, str):
        message = ""

    return CopilotReply(message=message, action=parse_copilot_action(payload.get("action")))
