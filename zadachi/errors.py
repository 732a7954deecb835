class ZadachiError(Exception):
    """Base class for chore board errors."""


class DataIntegrityError(ZadachiError, ValueError):
    """A template or usage record carries a value the engine cannot interpret."""


class DuplicateTemplateError(DataIntegrityError):
    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Template already exists: {key}")


class TemplateNotFoundError(ZadachiError, KeyError):
    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"Template not found: {self.key}"


class InstanceNotFoundError(ZadachiError, KeyError):
    def __init__(self, instance_id: str) -> None:
        self.instance_id = instance_id
        super().__init__(instance_id)

    def __str__(self) -> str:
        return f"Task not found: {self.instance_id}"


class MemberNotFoundError(ZadachiError, KeyError):
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(user_id)

    def __str__(self) -> str:
        return f"Member not found: {self.user_id}"


class TemplateUnavailableError(ZadachiError):
    def __init__(self, key: str, user_id: str) -> None:
        self.key = key
        self.user_id = user_id
        super().__init__(f"Template {key} is not available to {user_id}")


class InsufficientPointsError(ZadachiError):
    """Raised when a redemption would take a balance below zero."""

    def __init__(self, user_id: str, balance: int, requested: int) -> None:
        self.user_id = user_id
        self.balance = balance
        self.requested = requested
        self.shortfall = requested - balance
        super().__init__(
            f"Insufficient points for {user_id}: "
            f"balance={balance}, requested={requested}, shortfall={self.shortfall}"
        )


class ConcurrentUpdateError(ZadachiError):
    """A usage record changed underneath us more times than we were willing to retry."""
