"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    kind = "DomainError"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.kind}: {self.reason}"


class InvalidStateError(DomainException):
    """Operation attempted from a state that forbids it"""

    kind = "InvalidState"


class InvalidInputError(DomainException):
    """Non-positive amount, empty reason, out-of-range score, malformed identifier"""

    kind = "InvalidInput"


class CurrencyMismatchError(InvalidInputError):
    """Arithmetic or comparison across two different currencies"""


class InsufficientFundsError(DomainException):
    """Amount exceeds the available balance or the remaining amount owed"""

    kind = "InsufficientFunds"


class NotFoundError(DomainException):
    """Referenced aggregate does not exist"""

    kind = "NotFound"


class PolicyViolationError(DomainException):
    """Business rule owned by the service layer was broken"""

    kind = "PolicyViolation"
