from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class DebtCollection(BaseModel):
    """Outcome of paying one epoch's debt, as reported by the settlement service."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    total_debt: int = Field(..., ge=0)
    total_paid: int = Field(..., ge=0)
    insufficient_funds_count: int = Field(..., ge=0)
    total_validators: int = Field(0, ge=0)


@dataclass(frozen=True)
class DebtSummary:
    """Totals of one sweep, posted once when the sweep runs out of finalized epochs."""

    insufficient_funds_count: int
    total_debt: int
    total_paid: int


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    reason: str


# Raw settlement client result: the client never classifies failures.
SettlementResult = Union[Ok[Any], Err]
