class RoasteryError(Exception):
    """Base exception for the storefront backend."""

    pass


class ValidationRejection(RoasteryError):
    """Raised when input breaks a business rule. The reason is shown to the user."""

    def __init__(self, reason: str, code: str = "invalid_request"):
        self.reason = reason
        self.code = code
        super().__init__(reason)


class ResourceNotFoundError(RoasteryError):
    """Raised when a requested record does not exist or is not visible to the requester."""

    pass


class PermissionDeniedError(RoasteryError):
    """Raised when the requester may not act on a record."""

    pass


class BillingNotConfiguredError(RoasteryError):
    """Raised when billing provider credentials are missing."""

    pass


class BillingProviderError(RoasteryError):
    """Raised when the billing provider answers with a non-2xx status.

    The provider's response text is kept verbatim so callers can surface it.
    """

    def __init__(self, operation: str, status_code: int, body: str):
        self.operation = operation
        self.status_code = status_code
        self.body = body
        super().__init__(f"Billing provider {operation} failed ({status_code}): {body}")


class PlanNotFoundError(RoasteryError):
    """Raised when a billing plan is missing or inactive at the provider."""

    def __init__(self, plan_id: str, detail: str = ""):
        self.plan_id = plan_id
        self.detail = detail
        message = f"Billing plan {plan_id} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class PartialWriteError(RoasteryError):
    """Raised when a multi-row write failed midway and was compensated."""

    pass


class DuplicateDeliveryError(RoasteryError):
    """Raised when a delivery already exists for a (subscription, cycle_number) pair."""

    def __init__(self, subscription_id: object, cycle_number: int):
        self.subscription_id = subscription_id
        self.cycle_number = cycle_number
        super().__init__(f"Delivery for cycle {cycle_number} of subscription {subscription_id} already exists")
