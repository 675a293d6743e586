"""
Meter to Customer Tests
=======================

Tests for the meter record path:
1. The meter commits, signs and sends one record per reading
2. The customer verifies each record before it enters the ledger
3. Partial records stay buffered, forged or inconsistent ones raise
"""

import pytest

from billing_channel import MemoryChannel, _Pipe, pipe
from billing_consumption import FLOATING, INTEGER, Consumption, PriceTable
from billing_customer import CustomerState, build_bill_proof, customer_read_consumption
from billing_errors import (
    AuthenticationError,
    CommitmentMismatchError,
    InvalidConsumptionError,
    InvalidParamsError,
    ProtocolError,
    TransportError,
)
from billing_meter import MeterState, meter_consume
from billing_protocol import Keys
from billing_utils import sign_message, stringify_bytes
from billing_wire import commitment_message, encode_meter_record, parse_commitment_message
from commitments import DHParams, commit, random_a, verify_opening


class ShortWriteChannel(MemoryChannel):
    """Drops the last byte of every write."""

    def _write(self, data):
        super()._write(data[:-1])
        return len(data) - 1


class TestMeter:

    def test_record_format(self, params, meter_keys):
        sk, _ = meter_keys
        meter_end, customer_end = pipe()
        commitment = meter_consume(params, Keys(sk), meter_end, Consumption(10, 5))

        first, second = customer_end.read_lines(2)
        cons_text, a_hex = first.decode().split(" ")
        assert cons_text == "5"
        assert verify_opening(params, commitment, 5, int(a_hex, 16))
        assert second.endswith(b" ")

        signed = bytes(int(t) for t in second.split())
        assert signed[64:] == commitment_message(commitment, 10)
        assert parse_commitment_message(signed[64:]) == (commitment, 10)

    def test_invalid_reading_is_never_sent(self, setup_system):
        meter = setup_system['meter']
        with pytest.raises(InvalidConsumptionError):
            meter.record(168, 5)
        with pytest.raises(InvalidConsumptionError):
            meter.record(10, -1)
        assert setup_system['customer_meter_end'].pending() == 0

    def test_scheme_mismatch(self, setup_system):
        with pytest.raises(InvalidConsumptionError):
            setup_system['meter'].consume(Consumption(10, 2.5, FLOATING))

    def test_short_write(self, params, meter_keys):
        sk, _ = meter_keys
        channel = ShortWriteChannel(_Pipe(), _Pipe())
        with pytest.raises(TransportError):
            meter_consume(params, Keys(sk), channel, Consumption(10, 5))

    def test_rejects_invalid_params(self, params, meter_keys):
        meter_end, _ = pipe()
        with pytest.raises(InvalidParamsError):
            MeterState(meter_end, Keys(meter_keys[0]), DHParams(params.p, 1))

    def test_poll_reads_nothing(self, setup_system):
        assert setup_system['meter'].poll() == 0


class TestCustomerLedger:

    def test_reading_enters_ledger(self, setup_system):
        meter = setup_system['meter']
        customer = setup_system['customer']

        commitment = meter.record(10, 5)
        assert customer.read_meter_messages() == 1

        (row,) = customer.consumption_table
        assert row.cons == 5
        assert row.hour_of_week == 10
        assert row.commit == commitment

    def test_drains_all_buffered_records(self, setup_system):
        meter = setup_system['meter']
        customer = setup_system['customer']

        for hour in range(5):
            meter.record(hour, hour * 2)
        assert customer.read_meter_messages() == 5
        assert [row.hour_of_week for row in customer.consumption_table] == list(range(5))
        assert customer.read_meter_messages() == 0

    def test_partial_record_waits(self, params, meter_keys):
        sk, vk = meter_keys
        meter_end, customer_end = pipe()
        a = random_a(params)
        c = commit(params, 7, a)
        record = encode_meter_record("7", a, sign_message(sk, commitment_message(c, 3)))

        table = []
        meter_end.send(record[:20])
        assert customer_read_consumption(customer_end, vk, params, INTEGER, table) is None
        assert table == []
        assert customer_end.pending() == 20

        meter_end.send(record[20:])
        row = customer_read_consumption(customer_end, vk, params, INTEGER, table)
        assert row.cons == 7
        assert table == [row]

    def test_floating_reading(self, params, meter_keys, provider_keys):
        sk, vk = meter_keys
        meter_end, customer_end = pipe()
        provider_end, _ = pipe()
        meter = MeterState(meter_end, Keys(sk), params, FLOATING)
        customer = CustomerState(customer_end, provider_end, PriceTable.null(FLOATING),
                                 provider_keys[1], vk, params)

        meter.record(31, 2.5)
        assert customer.read_meter_messages() == 1
        assert customer.consumption_table[0].cons == 2.5


class TestCustomerRejects:

    def _send(self, channel, sk, params, cons_text, m, a, hour=10):
        signed = sign_message(sk, commitment_message(commit(params, m, a), hour))
        channel.send(encode_meter_record(cons_text, a, signed))

    def test_tampered_signature(self, params, meter_keys):
        sk, vk = meter_keys
        meter_end, customer_end = pipe()
        a = random_a(params)
        signed = bytearray(sign_message(sk, commitment_message(commit(params, 5, a), 10)))
        signed[-1] ^= 0x01
        meter_end.send(encode_meter_record("5", a, bytes(signed)))

        table = []
        with pytest.raises(AuthenticationError):
            customer_read_consumption(customer_end, vk, params, INTEGER, table)
        assert table == []

    def test_wrong_meter_key(self, params, meter_keys, provider_keys):
        meter_end, customer_end = pipe()
        self._send(meter_end, provider_keys[0], params, "5", 5, random_a(params))
        with pytest.raises(AuthenticationError):
            customer_read_consumption(customer_end, meter_keys[1], params, INTEGER, [])

    def test_opening_mismatch(self, params, meter_keys):
        sk, vk = meter_keys
        meter_end, customer_end = pipe()
        # claims 6 units, commitment is to 5
        self._send(meter_end, sk, params, "6", 5, random_a(params))
        with pytest.raises(CommitmentMismatchError):
            customer_read_consumption(customer_end, vk, params, INTEGER, [])

    def test_negative_cons_on_wire(self, params, meter_keys):
        sk, vk = meter_keys
        meter_end, customer_end = pipe()
        self._send(meter_end, sk, params, "-1", -1, random_a(params))
        with pytest.raises(ProtocolError):
            customer_read_consumption(customer_end, vk, params, INTEGER, [])

    def test_signed_hour_out_of_range(self, params, meter_keys):
        sk, vk = meter_keys
        meter_end, customer_end = pipe()
        self._send(meter_end, sk, params, "5", 5, random_a(params), hour=168)
        with pytest.raises(ProtocolError):
            customer_read_consumption(customer_end, vk, params, INTEGER, [])

    def test_malformed_first_line(self, params, meter_keys):
        _, vk = meter_keys
        meter_end, customer_end = pipe()
        meter_end.send(b"5\n" + stringify_bytes(b"\x00" * 70).encode() + b"\n")
        with pytest.raises(ProtocolError):
            customer_read_consumption(customer_end, vk, params, INTEGER, [])


class TestBillProof:

    def test_bill_and_blinding(self, params, setup_system, prices):
        meter = setup_system['meter']
        customer = setup_system['customer']

        readings = [(10, 5), (11, 0), (100, 7)]
        for hour, units in readings:
            meter.record(hour, units)
        customer.read_meter_messages()

        proof = build_bill_proof(customer.consumption_table, prices, params)
        assert proof.bill == sum(units * prices[hour] for hour, units in readings)
        a_total = sum(row.a * prices[row.hour_of_week] for row in customer.consumption_table)
        assert proof.a == a_total % params.q
        assert proof.rows == [row.signed_commitment for row in customer.consumption_table]
        assert customer.bill_total() == proof.bill

    def test_empty_ledger(self, params, prices):
        proof = build_bill_proof([], prices, params)
        assert (proof.bill, proof.a, proof.rows) == (0, 0, [])
        assert proof.to_bytes() == b"0\n0\n0\n"
