"""
Price Distribution
==================

Authenticated, timestamped price updates from the provider.

Update blob (fixed size, one write):

    signature (SIGNATURE_BYTES) || timestamp (8 bytes, big-endian seconds) || prices

The signature covers timestamp || prices. A receiver drains every blob that
is buffered and keeps the last one. Every blob must verify, be fresh and
carry only valid prices; the first failure raises and nothing after it is
accepted.
"""

import logging
import struct
import time
from datetime import timedelta
from typing import Optional

from ecdsa import SigningKey, VerifyingKey

from billing_channel import Channel
from billing_consumption import ConsumptionScheme, PriceTable
from billing_errors import ProtocolError, StalePricesError
from billing_utils import SIGNATURE_BYTES, open_signed, sign_message

logger = logging.getLogger(__name__)

FRESHNESS_WINDOW = timedelta(days=60)

TIMESTAMP = struct.Struct(">Q")


def price_blob_length(scheme: ConsumptionScheme) -> int:
    """Size of one signed price update for the given scheme."""
    return SIGNATURE_BYTES + TIMESTAMP.size + PriceTable.byte_length(scheme)


def encode_prices(sk: SigningKey, prices: PriceTable, now: Optional[float] = None) -> bytes:
    """Sign timestamp || prices with the provider's key."""
    timestamp = int(time.time() if now is None else now)
    return sign_message(sk, TIMESTAMP.pack(timestamp) + prices.to_bytes())


def decode_prices(blob: bytes, their_pk: VerifyingKey, scheme: ConsumptionScheme,
                  now: Optional[float] = None,
                  window: timedelta = FRESHNESS_WINDOW) -> PriceTable:
    """
    Verify one price update blob and return its table.

    Raises
    ------
    AuthenticationError
        If the signature does not verify
    StalePricesError
        If the timestamp is older than window at receive time
    ProtocolError
        If the payload has the wrong length
    InvalidPriceError
        If any price is invalid (e.g. negative)
    """
    payload = open_signed(their_pk, blob)
    if len(payload) < TIMESTAMP.size:
        raise ProtocolError(f"Price update too short: {len(payload)} bytes")
    (timestamp,) = TIMESTAMP.unpack(payload[:TIMESTAMP.size])

    received = int(time.time() if now is None else now)
    if received - timestamp > window.total_seconds():
        raise StalePricesError(timestamp, received)

    return PriceTable.from_bytes(payload[TIMESTAMP.size:], scheme)


def send_prices(channel: Channel, sk: SigningKey, prices: PriceTable,
                now: Optional[float] = None) -> None:
    """Sign and write a price update."""
    channel.send(encode_prices(sk, prices, now))
    logger.info("Sent %s price update", prices.scheme.name)


def check_for_new_prices(channel: Channel, their_pk: VerifyingKey, scheme: ConsumptionScheme,
                         now: Optional[float] = None,
                         window: timedelta = FRESHNESS_WINDOW) -> Optional[PriceTable]:
    """
    Drain all buffered price updates.

    Returns
    -------
    PriceTable or None
        The last update read, or None if none was buffered
    """
    length = price_blob_length(scheme)
    latest = None

    while True:
        blob = channel.read_exact(length)
        if blob is None:
            break
        latest = decode_prices(blob, their_pk, scheme, now, window)
        logger.debug("Accepted price update")

    return latest
