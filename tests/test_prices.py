"""
Price Distribution Tests
========================

Tests for signed, timestamped price updates:
1. Encoding and the fixed blob length
2. Freshness window
3. Draining: the last buffered update wins
4. Rejection of forged, stale and invalid updates
"""

import struct
import time
from datetime import timedelta

import pytest

from billing_channel import pipe
from billing_consumption import FLOATING, INTEGER, PriceTable
from billing_errors import AuthenticationError, InvalidPriceError, StalePricesError
from billing_prices import (
    TIMESTAMP,
    check_for_new_prices,
    decode_prices,
    encode_prices,
    price_blob_length,
    send_prices,
)
from billing_utils import sign_message

DAY = 24 * 60 * 60


class TestEncoding:

    def test_blob_length(self, provider_keys, prices):
        sk, _ = provider_keys
        assert price_blob_length(INTEGER) == 64 + 8 + 168 * 4
        assert price_blob_length(FLOATING) == 64 + 8 + 168 * 8
        assert len(encode_prices(sk, prices)) == price_blob_length(INTEGER)

    def test_timestamp_is_signed(self, provider_keys, prices):
        sk, _ = provider_keys
        blob = encode_prices(sk, prices, now=1_700_000_000)
        assert blob[64:72] == struct.pack(">Q", 1_700_000_000)

    def test_decode(self, provider_keys, prices):
        sk, vk = provider_keys
        now = time.time()
        assert decode_prices(encode_prices(sk, prices, now), vk, INTEGER, now) == prices

    def test_floating_prices(self, provider_keys):
        sk, vk = provider_keys
        table = PriceTable.flat(0.4, FLOATING)
        blob = encode_prices(sk, table)
        assert len(blob) == price_blob_length(FLOATING)
        assert decode_prices(blob, vk, FLOATING) == table


class TestFreshness:

    def test_accepts_within_window(self, provider_keys, prices):
        sk, vk = provider_keys
        now = 1_700_000_000
        blob = encode_prices(sk, prices, now=now - 59 * DAY)
        assert decode_prices(blob, vk, INTEGER, now=now) == prices

    def test_rejects_stale(self, provider_keys, prices):
        sk, vk = provider_keys
        now = 1_700_000_000
        blob = encode_prices(sk, prices, now=now - 61 * DAY)
        with pytest.raises(StalePricesError) as excinfo:
            decode_prices(blob, vk, INTEGER, now=now)
        assert excinfo.value.timestamp == now - 61 * DAY
        assert excinfo.value.now == now

    def test_custom_window(self, provider_keys, prices):
        sk, vk = provider_keys
        now = 1_700_000_000
        blob = encode_prices(sk, prices, now=now - 2 * DAY)
        with pytest.raises(StalePricesError):
            decode_prices(blob, vk, INTEGER, now=now, window=timedelta(days=1))


class TestRejection:

    def test_wrong_key(self, meter_keys, provider_keys, prices):
        meter_sk, _ = meter_keys
        _, provider_vk = provider_keys
        with pytest.raises(AuthenticationError):
            decode_prices(encode_prices(meter_sk, prices), provider_vk, INTEGER)

    def test_tampered_price(self, provider_keys, prices):
        sk, vk = provider_keys
        blob = bytearray(encode_prices(sk, prices))
        blob[-1] ^= 0x01
        with pytest.raises(AuthenticationError):
            decode_prices(bytes(blob), vk, INTEGER)

    def test_negative_price_is_rejected_even_when_signed(self, provider_keys):
        sk, vk = provider_keys
        payload = TIMESTAMP.pack(int(time.time()))
        payload += struct.pack(">i", -5) + struct.pack(">i", 1) * 167
        with pytest.raises(InvalidPriceError):
            decode_prices(sign_message(sk, payload), vk, INTEGER)

    def test_floating_price_below_resolution(self, provider_keys):
        sk, vk = provider_keys
        payload = TIMESTAMP.pack(int(time.time())) + struct.pack(">d", 0.0004) * 168
        with pytest.raises(InvalidPriceError):
            decode_prices(sign_message(sk, payload), vk, FLOATING)


class TestCheckForNewPrices:

    def test_nothing_buffered(self, provider_keys):
        _, vk = provider_keys
        _, customer_end = pipe()
        assert check_for_new_prices(customer_end, vk, INTEGER) is None

    def test_last_update_wins(self, provider_keys, prices):
        sk, vk = provider_keys
        provider_end, customer_end = pipe()

        send_prices(provider_end, sk, PriceTable.flat(1))
        send_prices(provider_end, sk, PriceTable.flat(2))
        send_prices(provider_end, sk, prices)

        assert check_for_new_prices(customer_end, vk, INTEGER) == prices
        assert customer_end.pending() == 0
        assert check_for_new_prices(customer_end, vk, INTEGER) is None

    def test_partial_blob_waits(self, provider_keys, prices):
        sk, vk = provider_keys
        provider_end, customer_end = pipe()
        blob = encode_prices(sk, prices)

        provider_end.send(blob[:100])
        assert check_for_new_prices(customer_end, vk, INTEGER) is None
        assert customer_end.pending() == 100

        provider_end.send(blob[100:])
        assert check_for_new_prices(customer_end, vk, INTEGER) == prices

    def test_stale_update_in_stream_raises(self, provider_keys, prices):
        sk, vk = provider_keys
        provider_end, customer_end = pipe()
        send_prices(provider_end, sk, prices, now=time.time() - 90 * DAY)
        send_prices(provider_end, sk, prices)
        with pytest.raises(StalePricesError):
            check_for_new_prices(customer_end, vk, INTEGER)

    def test_customer_applies_update(self, setup_system):
        customer = setup_system['customer']
        provider = setup_system['provider']

        assert not customer.read_provider_messages()

        provider.change_price(10, 9)
        assert customer.read_provider_messages()
        assert customer.prices[10] == 9
        assert customer.prices == provider.prices
