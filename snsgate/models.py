"""
SNS Gateway request models.

Decrypted payloads are validated into one of these immediately at the edge;
nothing deeper than the API layer sees an untyped mapping.
"""
from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError

from snsgate.errors import InvalidInputError


class CheckDomainRequest(BaseModel):
    name: Optional[str] = None


class PurchaseDomainRequest(BaseModel):
    name: Optional[str] = None
    buyerPubkey: Optional[str] = None
    # inf and nan never reach the amount arithmetic
    domainPriceUSDC: Optional[float] = Field(default=None, allow_inf_nan=False)
    serviceFeeUSDC: Optional[float] = Field(default=None, allow_inf_nan=False)
    serviceFeeAddress: Optional[str] = None

    def is_complete(self) -> bool:
        return all([self.name, self.buyerPubkey, self.domainPriceUSDC,
                    self.serviceFeeUSDC, self.serviceFeeAddress])


class UpdateDomainRequest(BaseModel):
    domain: Optional[str] = None
    newOwner: Optional[str] = None


class LookupRequest(BaseModel):
    pubkey: Optional[str] = None


class DomainRequest(BaseModel):
    domain: Optional[str] = None


M = TypeVar("M", bound=BaseModel)


def parse_request(model: Type[M], payload: Any, invalid_message: str) -> M:
    if not isinstance(payload, dict):
        raise InvalidInputError(invalid_message, details="Request payload must be an object")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise InvalidInputError(invalid_message, details=f"Invalid field(s): {fields}")
