"""
Shared fixtures for the billing tests.

Parameter generation is the slow part, so one 256-bit group is generated per
test session and shared by every test.
"""

import os
import sys

import pytest

# 添加父目录到路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from billing_channel import pipe
from billing_consumption import INTEGER, PriceTable
from billing_customer import CustomerState
from billing_meter import MeterState
from billing_protocol import Keys
from billing_provider import ProviderState
from billing_utils import generate_signing_keys
from commitments import gen_dh_params

TEST_MODULUS_BITS = 256


@pytest.fixture(scope="session")
def params():
    """A small but valid commitment group."""
    return gen_dh_params(TEST_MODULUS_BITS)


@pytest.fixture(scope="session")
def meter_keys():
    return generate_signing_keys()


@pytest.fixture(scope="session")
def provider_keys():
    return generate_signing_keys()


@pytest.fixture
def prices():
    """Integer prices: hour h costs h % 7 + 1."""
    return PriceTable([h % 7 + 1 for h in range(168)], INTEGER)


@pytest.fixture
def setup_system(params, meter_keys, provider_keys, prices):
    """
    Setup the complete three-party system over in-memory channels.

    Returns
    -------
    dict
        meter, customer, provider and the channel endpoints
    """
    meter_sk, meter_pk = meter_keys
    provider_sk, provider_pk = provider_keys

    meter_end, customer_meter_end = pipe()
    customer_provider_end, provider_end = pipe()

    meter = MeterState(meter_end, Keys(meter_sk), params, INTEGER)
    customer = CustomerState(customer_meter_end, customer_provider_end, prices.copy(),
                             provider_pk, meter_pk, params)
    provider = ProviderState(provider_end, prices.copy(), Keys(provider_sk, meter_pk), params,
                             read_retries=2, retry_interval=0)

    return {
        'meter': meter,
        'customer': customer,
        'provider': provider,
        'meter_end': meter_end,
        'customer_meter_end': customer_meter_end,
        'customer_provider_end': customer_provider_end,
        'provider_end': provider_end,
    }
