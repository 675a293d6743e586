"""
Billing Errors
==============

Exceptions raised by the billing protocol.

Every failed check in the protocol raises one of these. None of them is
recoverable inside the exchange that raised it: the framing has no
resynchronisation, and accepting data after a failed signature, freshness
or consistency check would accept unauthenticated data.

Hierarchy:
----------
- BillingError
    - ValidationError (also a ValueError): bad input, raised before any I/O
        - InvalidConsumptionError
        - InvalidPriceError
        - InvalidParamsError
    - AuthenticationError: a signature did not verify
    - StalePricesError: a price update is older than the freshness window
    - ConsistencyError
        - BillRejectedError: the homomorphic bill check failed
        - CommitmentMismatchError: an opening does not match its commitment
    - ProtocolError: malformed framing or field on the wire
    - TransportError: short read/write, closed peer, timeout
"""


class BillingError(Exception):
    """Base class for all billing protocol errors."""


class ValidationError(BillingError, ValueError):
    """Input rejected before it reaches the wire."""


class InvalidConsumptionError(ValidationError):
    """Hour of week out of range or negative consumption."""


class InvalidPriceError(ValidationError):
    """Negative or unrepresentable price."""


class InvalidParamsError(ValidationError):
    """Commitment parameters failed validation."""


class AuthenticationError(BillingError):
    """Signature verification failed."""


class StalePricesError(BillingError):
    """Price update timestamp is outside the freshness window."""

    def __init__(self, timestamp: int, now: int):
        self.timestamp = timestamp
        self.now = now
        super().__init__(
            f"Price update from {timestamp} is too old (received at {now})"
        )


class ConsistencyError(BillingError):
    """Values that should agree cryptographically do not."""


class BillRejectedError(ConsistencyError):
    """The provider's recomputation does not match the declared bill."""

    def __init__(self, bill: int, reason: str = "homomorphic check failed"):
        self.bill = bill
        self.reason = reason
        super().__init__(f"Bill {bill} rejected: {reason}")


class CommitmentMismatchError(ConsistencyError):
    """A meter record's opening does not reproduce its signed commitment."""


class ProtocolError(BillingError):
    """Malformed message on the wire."""


class TransportError(BillingError):
    """The channel failed to deliver a complete message."""
