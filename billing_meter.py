"""
Smart Meter
===========

The meter is a trusted, resource-constrained device that:
1. Commits to each hour's consumption with a fresh blinding factor
2. Signs the commitment together with the hour of week
3. Sends the opening (cons, a) and the signed commitment to the customer

Security Model:
---------------
- The meter is trusted by both the customer and the provider
- The opening is only ever sent to the customer
- The provider only sees signed commitments, never a single reading
- The meter's signing key must be kept secret
"""

import logging

from billing_channel import Channel
from billing_consumption import INTEGER, Consumption, ConsumptionScheme
from billing_errors import InvalidConsumptionError
from billing_protocol import BillingParty, Keys
from billing_utils import sign_message
from billing_wire import commitment_message, encode_meter_record
from commitments import DHParams, commit, random_a

logger = logging.getLogger(__name__)


def meter_consume(params: DHParams, keys: Keys, channel: Channel,
                  consumption: Consumption) -> int:
    """
    Commit to, sign and send one reading.

    Parameters
    ----------
    params : DHParams
        The commitment group
    keys : Keys
        The meter's keys (only my_sk is used)
    channel : Channel
        Channel to the customer
    consumption : Consumption
        The reading

    Returns
    -------
    int
        The commitment that was signed

    Raises
    ------
    InvalidConsumptionError
        If the reading is invalid (nothing is sent)
    TransportError
        On a short write
    """
    if not consumption.is_valid():
        raise InvalidConsumptionError(f"Refusing to send invalid reading {consumption!r}")

    scheme = consumption.scheme
    a = random_a(params)
    commitment = commit(params, scheme.to_exponent(consumption.units_consumed), a)

    signed_commitment = sign_message(keys.my_sk,
                                     commitment_message(commitment, consumption.hour_of_week))

    message = encode_meter_record(scheme.format(consumption.units_consumed), a, signed_commitment)
    channel.send(message)
    logger.debug("Sent reading for hour %d", consumption.hour_of_week)
    return commitment


class MeterState(BillingParty):
    """
    Smart meter state.

    The meter only writes; it never reads from the customer.
    """

    role = "meter"

    def __init__(self, channel: Channel, keys: Keys, params: DHParams,
                 scheme: ConsumptionScheme = INTEGER):
        """
        Parameters
        ----------
        channel : Channel
            Channel to the customer
        keys : Keys
            The meter's signing key
        params : DHParams
            Commitment parameters (validated here)
        scheme : ConsumptionScheme, optional
            Numeric domain of readings. Default is INTEGER.
        """
        super().__init__(params)
        self.channel = channel
        self.keys = keys
        self.scheme = scheme

    def consume(self, consumption: Consumption) -> int:
        """Called once every hour with the consumption incurred in that hour."""
        if consumption.scheme.name != self.scheme.name:
            raise InvalidConsumptionError(
                f"Meter bills in {self.scheme.name}, got a {consumption.scheme.name} reading"
            )
        return meter_consume(self.params, self.keys, self.channel, consumption)

    def record(self, hour_of_week: int, units_consumed) -> int:
        """Build a Consumption in this meter's scheme and consume() it."""
        return self.consume(Consumption(hour_of_week, units_consumed, self.scheme))

    def poll(self) -> int:
        return 0

    def close(self) -> None:
        self.channel.close()
