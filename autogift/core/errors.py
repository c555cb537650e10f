"""
Domain errors for the auto-gift pipeline.

Routers translate these into HTTP responses; the orchestrator turns
configuration and selection errors into a terminal 'failed' execution.
"""


class AutoGiftError(Exception):
    """Base class for every pipeline error."""


# --- Configuration errors (terminal, need user correction) ---

class RuleNotFoundError(AutoGiftError):
    def __init__(self, rule_id: str):
        super().__init__("Auto-gifting rule not found")
        self.rule_id = rule_id


class MalformedRuleError(AutoGiftError):
    """The stored rule document failed validation at load time."""


class RecipientUnavailableError(AutoGiftError):
    """No way to reach the recipient (no profile, no email)."""


# --- Selection ---

class SelectionExhaustedError(AutoGiftError):
    def __init__(self):
        super().__init__("No suitable gifts found")


# --- Lookups ---

class ExecutionNotFoundError(AutoGiftError):
    def __init__(self, execution_id: str):
        super().__init__(f"Execution {execution_id} not found")
        self.execution_id = execution_id


class EventNotFoundError(AutoGiftError):
    def __init__(self, event_id: str):
        super().__init__(f"Automated gift event {event_id} not found")
        self.event_id = event_id


# --- State machine ---

class InvalidTransitionError(AutoGiftError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move execution from '{current}' to '{target}'")
        self.current = current
        self.target = target


# --- Address collection ---

class TokenInvalidError(AutoGiftError):
    """
    Token is unknown, expired, or already consumed.

    `already_collected` distinguishes a consumed token so the form can
    show a "link already used" message with a 200 instead of a 404.
    """

    def __init__(self, already_collected: bool = False):
        super().__init__("This link is invalid or has expired")
        self.already_collected = already_collected


# --- Orders ---

class OrderCreationError(AutoGiftError):
    """The order collaborator refused or failed to create the order."""


class DuplicateOrderError(OrderCreationError):
    def __init__(self, idempotency_key: str):
        super().__init__(f"Order already exists for idempotency key {idempotency_key}")
        self.idempotency_key = idempotency_key


# --- Approval ---

class InvalidSelectionError(AutoGiftError):
    """selected_product_ids matched none of the execution's products."""
