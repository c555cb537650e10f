"""
Rule Models — Pydantic schemas for auto-gifting rules and per-user settings.

Stored rule documents are validated here when the orchestrator loads
them, so a malformed `gift_selection_criteria` blob is rejected up
front instead of failing deep inside gift selection.

Also defines the request/response models for the rules API:
- GET/POST /api/v1/auto-gifts/rules
- PATCH/DELETE /api/v1/auto-gifts/rules/{rule_id}
- GET/PUT /api/v1/auto-gifts/settings
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from autogift.core.config import DEFAULT_BUDGET_LIMIT, MIN_GIFT_PRICE

GiftSource = Literal["wishlist", "ai", "both", "specific"]


# ======================================================================
# Rule sub-documents
# ======================================================================

class GiftSelectionCriteria(BaseModel):
    """Where gifts come from and which products are acceptable."""

    source: Optional[GiftSource] = None
    categories: list[str] = Field(default_factory=list)
    exclude_items: list[str] = Field(default_factory=list)
    min_price: Optional[float] = Field(default=None, ge=0)
    max_price: Optional[float] = Field(default=None, gt=0)
    specific_product_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_specific_product(self) -> "GiftSelectionCriteria":
        if self.source == "specific" and not self.specific_product_id:
            raise ValueError("source 'specific' requires specific_product_id")
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price cannot exceed max_price")
        return self


class NotificationPreferences(BaseModel):
    enabled: bool = True
    days_before: list[int] = Field(default_factory=lambda: [7])

    @field_validator("days_before")
    @classmethod
    def validate_days_before(cls, v: list[int]) -> list[int]:
        if any(d < 0 for d in v):
            raise ValueError("Lead times must be zero or positive.")
        return sorted(set(v), reverse=True)


# ======================================================================
# Settings
# ======================================================================

class BudgetTracking(BaseModel):
    spent_this_month: float = 0.0
    spent_this_year: float = 0.0


class AutoGiftSettings(BaseModel):
    """
    Per-user defaults applied when a rule omits a value.

    `auto_approve_gifts` skips the human approval gate when the
    selected total fits the rule's budget.
    """

    user_id: str
    default_budget_limit: float = Field(default=DEFAULT_BUDGET_LIMIT, gt=0)
    auto_approve_gifts: bool = False
    default_gift_source: GiftSource = "wishlist"
    email_notifications: bool = True
    push_notifications: bool = False
    budget_tracking: BudgetTracking = Field(default_factory=BudgetTracking)

    @field_validator("budget_tracking", mode="before")
    @classmethod
    def _null_tracking(cls, v):
        return v or {}


# ======================================================================
# Rule
# ======================================================================

class AutoGiftRule(BaseModel):
    """
    A user's standing instruction to gift one recipient on one occasion.

    Exactly one of recipient_id / pending_recipient_email is set: the
    latter covers recipients who are not platform users yet.
    """

    id: str
    user_id: str
    recipient_id: Optional[str] = None
    pending_recipient_email: Optional[str] = None
    date_type: str
    budget_limit: Optional[float] = Field(default=None, gt=0)
    gift_selection_criteria: GiftSelectionCriteria = Field(
        default_factory=GiftSelectionCriteria,
    )
    notification_preferences: NotificationPreferences = Field(
        default_factory=NotificationPreferences,
    )
    gift_message: Optional[str] = None
    is_active: bool = True

    @field_validator("gift_selection_criteria", "notification_preferences", mode="before")
    @classmethod
    def _null_blob(cls, v):
        # Older rows store NULL instead of an empty JSON object
        return v or {}

    @model_validator(mode="after")
    def _check_recipient(self) -> "AutoGiftRule":
        if bool(self.recipient_id) == bool(self.pending_recipient_email):
            raise ValueError(
                "Exactly one of recipient_id or pending_recipient_email must be set"
            )
        return self

    def effective_budget(self, settings: AutoGiftSettings) -> float:
        """Rule budget, or the owner's default when the rule has none."""
        if self.budget_limit is not None:
            return self.budget_limit
        return settings.default_budget_limit

    def effective_source(self, settings: AutoGiftSettings) -> str:
        return self.gift_selection_criteria.source or settings.default_gift_source

    def price_bounds(self, settings: AutoGiftSettings) -> tuple[float, float]:
        """
        (min, max) price a single gift may have for this rule.

        The floor never drops below MIN_GIFT_PRICE and the ceiling never
        exceeds the effective budget.
        """
        criteria = self.gift_selection_criteria
        price_min = max(MIN_GIFT_PRICE, criteria.min_price or 0)
        price_max = self.effective_budget(settings)
        if criteria.max_price is not None:
            price_max = min(price_max, criteria.max_price)
        return price_min, price_max


# ======================================================================
# API request / response models
# ======================================================================

class RuleCreateRequest(BaseModel):
    """Payload for POST /api/v1/auto-gifts/rules."""

    recipient_id: Optional[str] = None
    pending_recipient_email: Optional[str] = Field(default=None, max_length=320)
    date_type: str = Field(..., min_length=1, max_length=50)
    budget_limit: float = Field(..., gt=0, description="Maximum spend per gift, in dollars.")
    gift_selection_criteria: GiftSelectionCriteria = Field(default_factory=GiftSelectionCriteria)
    notification_preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)
    gift_message: Optional[str] = Field(default=None, max_length=500)

    @field_validator("pending_recipient_email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("pending_recipient_email must be an email address.")
        return v

    @model_validator(mode="after")
    def _check_recipient(self) -> "RuleCreateRequest":
        if bool(self.recipient_id) == bool(self.pending_recipient_email):
            raise ValueError(
                "Provide exactly one of recipient_id or pending_recipient_email."
            )
        return self


class RuleUpdateRequest(BaseModel):
    """Payload for PATCH /api/v1/auto-gifts/rules/{rule_id}. All fields optional."""

    date_type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    budget_limit: Optional[float] = Field(default=None, gt=0)
    gift_selection_criteria: Optional[GiftSelectionCriteria] = None
    notification_preferences: Optional[NotificationPreferences] = None
    gift_message: Optional[str] = Field(default=None, max_length=500)
    is_active: Optional[bool] = None


class RuleListResponse(BaseModel):
    rules: list[AutoGiftRule] = Field(default_factory=list)
    count: int = 0


class SettingsUpdateRequest(BaseModel):
    """Payload for PUT /api/v1/auto-gifts/settings. Budget counters are read-only."""

    default_budget_limit: Optional[float] = Field(default=None, gt=0)
    auto_approve_gifts: Optional[bool] = None
    default_gift_source: Optional[GiftSource] = None
    email_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None
