"""
Customer Device
===============

The customer device sits between the meter and the provider. It:
1. Collects signed, committed readings from the meter into a ledger
2. Receives authenticated price updates from the provider
3. Computes the bill and an aggregate blinding factor over the ledger
4. Sends the bill proof, so the provider can check the bill against the
   meter's commitments without seeing any single reading

Key Responsibilities:
---------------------
- Ledger: every row keeps the opening (cons, a) next to the signed commitment
- Proof: bill = Σ cons_i · price[hour_i], a = Σ a_i · price[hour_i] mod q
- The ledger is cleared only after the proof has been written

Security Model:
---------------
- The customer is trusted by nobody but itself
- Cheating on the bill is caught by the provider's homomorphic check
- Unsigned or mis-signed meter data is rejected before it enters the ledger
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ecdsa import VerifyingKey

from billing_channel import Channel
from billing_consumption import Number, PriceTable
from billing_errors import CommitmentMismatchError, ProtocolError
from billing_prices import check_for_new_prices
from billing_protocol import BillingParty
from billing_utils import open_signed
from billing_wire import BillProof, parse_commitment_message, read_meter_record
from commitments import DHParams, verify_opening

logger = logging.getLogger(__name__)


@dataclass
class ConsumptionTableRow:
    """
    One ledger entry.

    Attributes
    ----------
    signed_commitment : bytes
        The meter's signature over '<commitment_hex> <hour>', with message
    cons : int or float
        Units consumed
    hour_of_week : int
        The hour the reading belongs to
    commit : int
        The commitment recovered from signed_commitment
    a : int
        The blinding factor that opens commit
    """
    signed_commitment: bytes
    cons: Number
    hour_of_week: int
    commit: int
    a: int


def customer_read_consumption(channel: Channel, meter_key: VerifyingKey, params: DHParams,
                              scheme, table: List[ConsumptionTableRow],
                              block: bool = False) -> Optional[ConsumptionTableRow]:
    """
    Read one meter record, verify it and append it to table.

    Returns
    -------
    ConsumptionTableRow or None
        The new row, or None if no complete record was buffered

    Raises
    ------
    AuthenticationError
        If the signature does not verify under meter_key
    CommitmentMismatchError
        If (cons, a) does not open the signed commitment
    ProtocolError
        If the record is malformed
    """
    record = read_meter_record(channel, scheme, block)
    if record is None:
        return None

    message = open_signed(meter_key, record.signed_commitment)
    commitment, hour_of_week = parse_commitment_message(message)

    if not scheme.is_valid(record.cons):
        raise ProtocolError(f"Invalid {scheme.name} consumption on the wire: {record.cons!r}")
    if not verify_opening(params, commitment, scheme.to_exponent(record.cons), record.a):
        raise CommitmentMismatchError(f"Opening does not match commitment for hour {hour_of_week}")

    row = ConsumptionTableRow(
        signed_commitment=record.signed_commitment,
        cons=record.cons,
        hour_of_week=hour_of_week,
        commit=commitment,
        a=record.a,
    )
    table.append(row)
    return row


def build_bill_proof(rows: List[ConsumptionTableRow], prices: PriceTable,
                     params: DHParams) -> BillProof:
    """
    Aggregate the ledger under prices.

    Formula:
    --------
    bill = Σ e(cons_i) · e(price[hour_i])
    a    = Σ a_i · e(price[hour_i])  mod q

    where e() is the scheme's map into committed integers. Since
    ∏ Commit(cons_i, a_i)^{price_i} = Commit(bill, a), the provider can check
    the claim from the signed commitments alone.
    """
    scheme = prices.scheme
    bill = 0
    a_total = 0
    for row in rows:
        weight = prices.exponent(row.hour_of_week)
        bill += scheme.to_exponent(row.cons) * weight
        a_total += row.a * weight

    return BillProof(bill=bill, a=a_total % params.q,
                     rows=[row.signed_commitment for row in rows])


class CustomerState(BillingParty):
    """
    Customer device state.

    The customer owns the ledger; nobody else can read or change it.
    """

    role = "customer"

    def __init__(self, meter_channel: Channel, provider_channel: Channel, prices: PriceTable,
                 provider_key: VerifyingKey, meter_key: VerifyingKey, params: DHParams):
        """
        Parameters
        ----------
        meter_channel : Channel
            Channel to the meter
        provider_channel : Channel
            Channel to the provider
        prices : PriceTable
            Initial prices; also fixes the consumption scheme
        provider_key : VerifyingKey
            Verifies price updates
        meter_key : VerifyingKey
            Verifies meter records
        params : DHParams
            Commitment parameters (validated here)
        """
        super().__init__(params)
        self.meter_channel = meter_channel
        self.provider_channel = provider_channel
        self.prices = prices
        self.scheme = prices.scheme
        self.provider_key = provider_key
        self.meter_key = meter_key
        self.consumption_table: List[ConsumptionTableRow] = []

    def read_meter_messages(self) -> int:
        """Move every buffered meter record into the ledger; return how many."""
        count = 0
        while customer_read_consumption(self.meter_channel, self.meter_key, self.params,
                                        self.scheme, self.consumption_table) is not None:
            count += 1
        if count:
            logger.debug("Added %d readings to the ledger", count)
        return count

    def read_provider_messages(self) -> bool:
        """Apply the latest buffered price update; return True if prices changed."""
        new_prices = check_for_new_prices(self.provider_channel, self.provider_key, self.scheme)
        if new_prices is None:
            return False
        self.prices = new_prices
        logger.info("Prices updated by provider")
        return True

    def build_bill_proof(self) -> BillProof:
        return build_bill_proof(self.consumption_table, self.prices, self.params)

    def bill_total(self) -> Number:
        """The bill for the current ledger, in the scheme's unit."""
        return self.scheme.bill_value(self.build_bill_proof().bill)

    def send_billing_information(self) -> BillProof:
        """
        Send a proof for the whole ledger, then clear the ledger.

        If the write fails the ledger is left untouched.
        """
        proof = self.build_bill_proof()
        self.provider_channel.send(proof.to_bytes())
        self.consumption_table.clear()
        logger.info("Sent bill %s over %d readings",
                    self.scheme.bill_value(proof.bill), len(proof.rows))
        return proof

    def poll(self) -> int:
        updated = self.read_provider_messages()
        return self.read_meter_messages() + int(updated)

    def close(self) -> None:
        self.meter_channel.close()
        self.provider_channel.close()
