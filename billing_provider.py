"""
Utility Provider
================

The provider accepts a bill only if it is provably consistent with the
meter's signed commitments and the provider's own prices. It never learns
an individual reading.

Verification of a bill proof (bill, a, rows):
1. Zero rows: the bill must be exactly 0
2. The bill must lie in [0, q), where commitments bind it uniquely
3. Every row must carry a valid meter signature over (commitment, hour)
4. Commit(bill, a) must equal ∏ commitment_i^{price[hour_i]}

Security Model:
---------------
- The provider trusts the meter's key and its own prices, nothing else
- The customer's individual openings (cons_i, a_i) are never needed
- A failed signature or a failed check is never silently skipped
"""

import logging
import time
from typing import Optional

from ecdsa import VerifyingKey

from billing_channel import Channel
from billing_consumption import Number, PriceTable
from billing_errors import BillRejectedError, TransportError
from billing_prices import send_prices
from billing_protocol import BillingParty, Keys
from billing_utils import open_signed
from billing_wire import BillProof, parse_commitment_message, read_bill_proof
from commitments import DHParams, commit, weighted_sum

logger = logging.getLogger(__name__)


def verify_bill_proof(proof: BillProof, prices: PriceTable, meter_key: VerifyingKey,
                      params: DHParams) -> bool:
    """
    Check a bill proof against the provider's prices.

    Parameters
    ----------
    proof : BillProof
        The customer's claim
    prices : PriceTable
        The provider's current prices
    meter_key : VerifyingKey
        The meter's public key
    params : DHParams
        The commitment group

    Returns
    -------
    bool
        True if the bill is consistent with the signed commitments

    Raises
    ------
    AuthenticationError
        If any row's signature does not verify
    ProtocolError
        If a signed row is malformed
    """
    if not proof.rows:
        return proof.bill == 0

    # Exponents are only bound mod q: bill + q would match just as well
    if not 0 <= proof.bill < params.q:
        logger.warning("Bill %d outside the committed range", proof.bill)
        return False

    commitments = []
    weights = []
    for signed_commitment in proof.rows:
        commitment, hour_of_week = parse_commitment_message(open_signed(meter_key, signed_commitment))
        commitments.append(commitment)
        weights.append(prices.exponent(hour_of_week))

    expected = commit(params, proof.bill, proof.a)
    calculated = weighted_sum(params, commitments, weights)
    return expected == calculated


class ProviderState(BillingParty):
    """
    Utility provider state.

    Holds the current prices and the running total of verified, unpaid bills.
    """

    role = "provider"

    def __init__(self, channel: Channel, prices: PriceTable, keys: Keys, params: DHParams,
                 meter_key: Optional[VerifyingKey] = None,
                 read_retries: int = 30, retry_interval: float = 1.0):
        """
        Parameters
        ----------
        channel : Channel
            Channel to the customer
        prices : PriceTable
            Initial prices; also fixes the consumption scheme
        keys : Keys
            my_sk signs price updates; their_pk is the meter's key unless
            meter_key is given
        params : DHParams
            Commitment parameters (validated here)
        meter_key : VerifyingKey, optional
            The meter's public key
        read_retries, retry_interval
            Sleep-and-retry policy of blocking bill reads
        """
        super().__init__(params)
        self.channel = channel
        self.prices = prices
        self.scheme = prices.scheme
        self.keys = keys
        self.meter_key = meter_key if meter_key is not None else keys.their_pk
        if self.meter_key is None:
            raise ValueError("Provider needs the meter's public key")
        self.read_retries = read_retries
        self.retry_interval = retry_interval
        self.running_total = 0

    def verify(self, proof: BillProof) -> bool:
        return verify_bill_proof(proof, self.prices, self.meter_key, self.params)

    def accept_bill(self, proof: BillProof) -> Number:
        """
        Verify proof and add its bill to the running total.

        Raises
        ------
        BillRejectedError
            If the proof does not verify; the running total is unchanged
        """
        if not self.verify(proof):
            logger.warning("Rejected bill %d over %d readings", proof.bill, len(proof.rows))
            raise BillRejectedError(proof.bill)

        self.running_total += proof.bill
        amount = self.scheme.bill_value(proof.bill)
        logger.info("Accepted bill %s over %d readings", amount, len(proof.rows))
        return amount

    def _read_proof_blocking(self) -> BillProof:
        for attempt in range(self.read_retries):
            try:
                return read_bill_proof(self.channel, block=True)
            except TransportError:
                if self.channel.peer_closed:
                    raise
                logger.debug("No bill yet (attempt %d/%d)", attempt + 1, self.read_retries)
                time.sleep(self.retry_interval)
        raise TransportError(f"No bill received after {self.read_retries} attempts")

    def receive_billing_information(self, block: bool = False) -> int:
        """
        Read and accept bill proofs from the customer.

        Non-blocking calls drain every buffered proof. Blocking calls wait
        for one proof, then drain the rest.

        Returns
        -------
        int
            Number of bills accepted
        """
        count = 0
        if block:
            self.accept_bill(self._read_proof_blocking())
            count += 1

        while True:
            proof = read_bill_proof(self.channel)
            if proof is None:
                return count
            self.accept_bill(proof)
            count += 1

    def pay_bill(self) -> Number:
        """Collect buffered bills, then return and reset the running total."""
        self.receive_billing_information()
        total = self.scheme.bill_value(self.running_total)
        self.running_total = 0
        return total

    def change_prices(self, prices: PriceTable) -> None:
        """
        Send new prices to the customer and start billing with them.

        Does not check whether the prices actually changed.
        """
        if prices.scheme.name != self.scheme.name:
            raise ValueError(f"Provider bills in {self.scheme.name}, got {prices.scheme.name} prices")
        send_prices(self.channel, self.keys.my_sk, prices)
        self.prices = prices.copy()

    def change_price(self, hour_of_week: int, price: Number) -> None:
        """Change one hour's price and send the whole table."""
        prices = self.prices.copy()
        prices.set_price(hour_of_week, price)
        self.change_prices(prices)

    def poll(self) -> int:
        return self.receive_billing_information()

    def close(self) -> None:
        self.channel.close()
