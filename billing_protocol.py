"""
Billing Roles
=============

Three-party billing:

1. Utility provider: publishes prices, verifies and collects bills
2. Smart meter: trusted by all parties, signs and commits to readings
3. Customer hardware: computes the bill and proves it to the provider

Each role is its own class (MeterState, CustomerState, ProviderState) and
owns its channels. There is no shared state between roles: they only talk
through the wire protocol.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ecdsa import SigningKey, VerifyingKey

from billing_errors import InvalidParamsError
from commitments import DHParams, verify_dh_params


@dataclass
class Keys:
    """
    Signing keys of one role towards one peer.

    Attributes
    ----------
    my_sk : SigningKey
        This role's secret signing key
    their_pk : VerifyingKey, optional
        The peer's public key, if this role verifies anything it sends
    """
    my_sk: SigningKey
    their_pk: Optional[VerifyingKey] = None


class BillingParty(ABC):
    """Interface shared by the three billing roles."""

    role: str

    def __init__(self, params: DHParams):
        if not verify_dh_params(params):
            raise InvalidParamsError("Commitment parameters failed validation")
        self.params = params

    @abstractmethod
    def poll(self) -> int:
        """Process every complete inbound message that is buffered; return how many."""

    @abstractmethod
    def close(self) -> None:
        """Close this role's channels."""
