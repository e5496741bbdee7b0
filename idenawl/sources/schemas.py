"""
Typed response shapes for the Idena node JSON-RPC and the public REST API.

Each payload we consume has its own model. Amounts arrive as numeric strings
(sometimes as JSON numbers) and are parsed explicitly into `Decimal`; a field
the model requires but the payload lacks fails validation instead of decoding
to zero.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from typing_extensions import Annotated


def parse_amount(value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValueError("amount must be a numeric string or number")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"not a decimal amount: {value!r}") from exc
    else:
        raise ValueError(f"unsupported amount type {type(value).__name__}")
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"amount out of range: {value!r}")
    return amount


Amount = Annotated[Decimal, BeforeValidator(parse_amount)]


class _Payload(BaseModel):
    # Upstream adds fields between releases; we only pin the ones we read.
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# --- node JSON-RPC ---------------------------------------------------------


class RpcError(_Payload):
    code: int = 0
    message: str = ""


class RpcEnvelope(_Payload):
    result: Any = None
    error: Optional[RpcError] = None


class NodeEpoch(_Payload):
    epoch: int
    start_block: Optional[int] = Field(default=None, alias="startBlock")
    next_validation: Optional[str] = Field(default=None, alias="nextValidation")
    current_period: Optional[str] = Field(default=None, alias="currentPeriod")
    # Not every node build reports it; absence is not zero.
    threshold: Optional[Amount] = Field(default=None, alias="discriminationStakeThreshold")


class NodeGlobalState(_Payload):
    threshold: Amount = Field(alias="discriminationStakeThreshold")


class NodeEpochIdentity(_Payload):
    address: str
    state: str
    stake: Amount


class NodeIdentity(_Payload):
    address: str
    state: str
    stake: Amount
    penalty: Optional[Amount] = None
    last_validation_flags: Optional[List[str]] = Field(default=None, alias="lastValidationFlags")


class NodeLastBlock(_Payload):
    height: int


class NodeBlock(_Payload):
    height: int
    flags: Optional[List[str]] = None
    transactions: Optional[List[str]] = None


# --- public REST API -------------------------------------------------------


class ApiError(_Payload):
    message: str = ""


class ApiEnvelope(_Payload):
    result: Any = None
    continuation_token: Optional[str] = Field(default=None, alias="continuationToken")
    error: Optional[ApiError] = None


class ApiEpochLast(_Payload):
    epoch: int
    validation_time: Optional[str] = Field(default=None, alias="validationTime")
    threshold: Amount = Field(alias="discriminationStakeThreshold")


class ApiEpoch(_Payload):
    epoch: int
    validation_first_block_height: int = Field(alias="validationFirstBlockHeight")
    threshold: Optional[Amount] = Field(default=None, alias="discriminationStakeThreshold")


class ApiBlock(_Payload):
    height: int
    flags: Optional[List[str]] = None
    tx_count: Optional[int] = Field(default=None, alias="txCount")


class ApiTransaction(_Payload):
    hash: Optional[str] = None
    type: Optional[str] = None
    sender: Optional[str] = Field(default=None, alias="from")


class ApiValidationSummary(_Payload):
    state: str
    stake: Amount
    approved: bool
    penalized: bool


class ApiAuthor(_Payload):
    address: Optional[str] = None
    author: Optional[str] = None


class ApiIdentity(_Payload):
    address: str
    state: str


class ApiAddress(_Payload):
    address: str
    stake: Amount
    balance: Optional[Amount] = None
