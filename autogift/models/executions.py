"""
Execution Models — the auto-gift execution state machine and its payloads.

State machine (canonical `status` values):

    processing → pending_approval → approved → completed
         ↓              ↓              ↓
       failed        failed         failed

`pending_approval` and a parked `approved` execution may also be
rejected by the owner, which moves them to `cancelled`. `completed`,
`failed` and `cancelled` are terminal.
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


class ExecutionStatus(str, Enum):
    PROCESSING = "processing"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    ExecutionStatus.COMPLETED,
    ExecutionStatus.FAILED,
    ExecutionStatus.CANCELLED,
})

ALLOWED_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PROCESSING: frozenset({
        ExecutionStatus.PENDING_APPROVAL,
        ExecutionStatus.FAILED,
    }),
    ExecutionStatus.PENDING_APPROVAL: frozenset({
        ExecutionStatus.APPROVED,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
    }),
    ExecutionStatus.APPROVED: frozenset({
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
    }),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
    ExecutionStatus.CANCELLED: frozenset(),
}

AddressCollectionStatus = Literal["requested", "received"]
ProductSource = Literal["wishlist", "recommendation", "specific"]


def can_transition(current: ExecutionStatus, target: ExecutionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def sources_for(target: ExecutionStatus) -> list[ExecutionStatus]:
    """Every status from which `target` is reachable in one step."""
    return [s for s, targets in ALLOWED_TRANSITIONS.items() if target in targets]


# ======================================================================
# Domain records
# ======================================================================

class ProductStub(BaseModel):
    """A selected product as stored on the execution row."""

    product_id: str
    name: str
    price: float = Field(..., ge=0)
    image_url: Optional[str] = None
    source: ProductSource


class AutomatedGiftEvent(BaseModel):
    """An upcoming occasion detected by the scheduler."""

    id: str
    rule_id: str
    user_id: str
    occasion_date: str


class Execution(BaseModel):
    id: str
    user_id: str
    rule_id: str
    event_id: str
    status: ExecutionStatus
    selected_products: list[ProductStub] = Field(default_factory=list)
    total_amount: Optional[float] = None
    error_message: Optional[str] = None
    address_collection_status: Optional[AddressCollectionStatus] = None
    order_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("selected_products", mode="before")
    @classmethod
    def _null_products(cls, v):
        return v or []

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class OrderResult(BaseModel):
    """What the order collaborator returns."""

    order_id: str
    status: str


def total_of(products: list[ProductStub]) -> float:
    return round(sum(p.price for p in products), 2)


# ======================================================================
# API request / response models
# ======================================================================

class ProcessEventRequest(BaseModel):
    """Payload delivered by QStash to /api/v1/auto-gifts/events/process."""

    event_id: str = Field(..., min_length=1)


class ProcessEventResponse(BaseModel):
    execution_id: str
    status: ExecutionStatus
    error_message: Optional[str] = None


class ApproveExecutionRequest(BaseModel):
    decision: Literal["approved", "rejected"] = "approved"
    selected_product_ids: Optional[list[str]] = Field(
        default=None,
        description="Subset of selected_products to keep. Omit to keep all.",
    )

    @field_validator("selected_product_ids")
    @classmethod
    def validate_ids(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is not None and not v:
            raise ValueError("selected_product_ids cannot be empty when provided.")
        return v


class ApproveExecutionResponse(BaseModel):
    execution_id: str
    status: ExecutionStatus
    error_message: Optional[str] = None
    address_collection_status: Optional[AddressCollectionStatus] = None
    order_id: Optional[str] = None


class ExecutionListResponse(BaseModel):
    """Activity feed for GET /api/v1/auto-gifts/executions."""

    executions: list[Execution] = Field(default_factory=list)
    count: int = 0
