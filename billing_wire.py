"""
Billing Wire Format
===================

Line-oriented encodings of the two commitment-carrying messages.

Meter -> customer record (two lines, one write):

    <cons_decimal> <a_hex>\\n
    <signed commitment, stringified>\\n

Customer -> provider bill proof:

    <bill_decimal>\\n
    <a_hex>\\n
    <row_count_decimal>\\n
    <signed commitment, stringified>\\n      (row_count times)

A signed commitment is sign_message(meter_sk, b"<commitment_hex> <hour>").
Binding the hour into the signature stops a commitment from being replayed
against a different hour's price.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from billing_channel import Channel
from billing_consumption import ConsumptionScheme, Number, is_valid_hour
from billing_errors import ProtocolError
from billing_utils import stringify_bytes, unstringify_bytes
from commitments.utils import from_hex, to_hex

# Ten years of hourly readings
MAX_PROOF_ROWS = 10 * 366 * 24


def _decode(line: bytes) -> str:
    try:
        return line.decode("ascii")
    except UnicodeDecodeError as e:
        raise ProtocolError(f"Non-ASCII data on the wire: {e}") from e


def _parse_hex(text: str, what: str) -> int:
    try:
        return from_hex(text)
    except ValueError as e:
        raise ProtocolError(f"Malformed {what}: {e}") from e


def _parse_count(text: str, what: str) -> int:
    if not text.isdigit():
        raise ProtocolError(f"Malformed {what}: {text!r}")
    return int(text, 10)


def commitment_message(commitment: int, hour_of_week: int) -> bytes:
    """The bytes the meter signs: b'<commitment_hex> <hour_of_week>'."""
    return f"{to_hex(commitment)} {hour_of_week}".encode("ascii")


def parse_commitment_message(message: bytes) -> Tuple[int, int]:
    """
    Inverse of commitment_message().

    Returns
    -------
    commitment : int
    hour_of_week : int

    Raises
    ------
    ProtocolError
        If the message is malformed or the hour is out of range
    """
    parts = _decode(message).split(" ")
    if len(parts) != 2:
        raise ProtocolError(f"Expected '<commitment> <hour>', got {len(parts)} fields")

    commitment = _parse_hex(parts[0], "commitment")
    hour_of_week = _parse_count(parts[1], "hour of week")
    if not is_valid_hour(hour_of_week):
        raise ProtocolError(f"Hour of week out of range: {hour_of_week}")
    return commitment, hour_of_week


@dataclass
class MeterRecord:
    """A decoded meter record, before signature verification."""
    cons: Number
    a: int
    signed_commitment: bytes


def encode_meter_record(cons_text: str, a: int, signed_commitment: bytes) -> bytes:
    return f"{cons_text} {to_hex(a)}\n{stringify_bytes(signed_commitment)}\n".encode("ascii")


def read_meter_record(channel: Channel, scheme: ConsumptionScheme,
                      block: bool = False) -> Optional[MeterRecord]:
    """
    Take one complete meter record off the channel.

    Returns None if no complete record is buffered (non-blocking).
    """
    lines = channel.read_lines(2, block)
    if lines is None:
        return None

    opening = _decode(lines[0]).split(" ")
    if len(opening) != 2:
        raise ProtocolError(f"Expected '<cons> <a>', got {len(opening)} fields")

    cons = scheme.parse(opening[0])
    a = _parse_hex(opening[1], "blinding factor")
    return MeterRecord(cons, a, unstringify_bytes(_decode(lines[1])))


@dataclass
class BillProof:
    """
    The customer's claim about a billing period.

    Attributes
    ----------
    bill : int
        Σ cons_i · price_i in committed (exponent) units
    a : int
        Σ a_i · price_i mod q
    rows : List[bytes]
        The meter's signed commitments, in ledger order
    """
    bill: int
    a: int
    rows: List[bytes] = field(default_factory=list)

    def to_bytes(self) -> bytes:
        if len(self.rows) > MAX_PROOF_ROWS:
            raise ProtocolError(f"Bill proof has {len(self.rows)} rows, at most {MAX_PROOF_ROWS} allowed")
        header = f"{self.bill}\n{to_hex(self.a)}\n{len(self.rows)}\n"
        body = "".join(f"{stringify_bytes(row)}\n" for row in self.rows)
        return (header + body).encode("ascii")


def read_bill_proof(channel: Channel, block: bool = False) -> Optional[BillProof]:
    """
    Take one complete bill proof off the channel.

    Non-blocking calls return None and consume nothing unless the header and
    all of its rows are buffered.

    Raises
    ------
    ProtocolError
        If the header is malformed or declares more than MAX_PROOF_ROWS rows
    """
    header = channel.peek_lines(3, block)
    if header is None:
        return None

    bill = _parse_count(_decode(header[0]), "bill")
    a = _parse_hex(_decode(header[1]), "aggregate blinding factor")
    row_count = _parse_count(_decode(header[2]), "row count")
    if row_count > MAX_PROOF_ROWS:
        raise ProtocolError(f"Bill proof declares {row_count} rows, at most {MAX_PROOF_ROWS} allowed")

    lines = channel.read_lines(3 + row_count, block)
    if lines is None:
        return None
    rows = [unstringify_bytes(_decode(line)) for line in lines[3:]]
    return BillProof(bill, a, rows)
