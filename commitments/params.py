"""
Group Parameters
================

This module handles the Diffie-Hellman style parameters of the commitment
group: a safe prime modulus p = 2q + 1 and a generator g of the subgroup of
quadratic residues, which has prime order q.

Pedersen commitments need a second base h whose discrete logarithm to the
base g is unknown to everybody. h is derived from p by hashing into the
subgroup, so the parameters stay the pair (p, g) and both sides of the
protocol always agree on h.

Parameter generation uses pycryptodome's safe prime search; validation uses
its probabilistic primality test.
"""

import hashlib
import logging
from typing import NamedTuple

from Crypto.Math.Primality import (
    PROBABLY_PRIME,
    generate_probable_safe_prime,
    test_probable_prime,
)
from Crypto.Random import random as crypto_random

logger = logging.getLogger(__name__)

# Smallest modulus accepted by verify_dh_params
MIN_MODULUS_BITS = 256

DEFAULT_MODULUS_BITS = 1024

# Domain separation tag for deriving h from p
H_DERIVATION_TAG = b"billing-pedersen-h"


class DHParams(NamedTuple):
    """
    Commitment group parameters.

    Attributes
    ----------
    p : int
        Safe prime modulus
    g : int
        Generator of the order-q subgroup of Z_p^*
    """
    p: int
    g: int

    @property
    def q(self) -> int:
        """Order of the commitment subgroup, (p - 1) / 2."""
        return (self.p - 1) // 2

    @property
    def h(self) -> int:
        """Second Pedersen base, derived from p."""
        return derive_h(self.p, self.g)


def derive_h(p: int, g: int) -> int:
    """
    Hash the modulus into the subgroup of quadratic residues.

    Parameters
    ----------
    p : int
        Safe prime modulus
    g : int
        First generator (h must differ from it)

    Returns
    -------
    int
        h = x^2 mod p for a hash-derived x, with h not in {0, 1, g}

    Notes
    -----
    Squaring lands in the order-q subgroup. Since q is prime, every element
    other than 1 generates it. The derivation is deterministic, so h never
    has to be stored or transmitted.
    """
    width = (p.bit_length() + 7) // 8 + 16  # extra bytes keep the reduction unbiased
    p_bytes = p.to_bytes((p.bit_length() + 7) // 8, "big")
    counter = 0
    while True:
        seed = H_DERIVATION_TAG + p_bytes + counter.to_bytes(4, "big")
        x = int.from_bytes(hashlib.shake_256(seed).digest(width), "big") % p
        h = pow(x, 2, p)
        if h not in (0, 1, g):
            return h
        counter += 1


def gen_dh_params(bits: int = DEFAULT_MODULUS_BITS) -> DHParams:
    """
    Generate fresh commitment parameters.

    Parameters
    ----------
    bits : int, optional
        Exact bit length of the modulus. Default is 1024.

    Returns
    -------
    DHParams
        Parameters that satisfy verify_dh_params()

    Notes
    -----
    Safe prime generation is slow for large moduli (seconds to minutes at
    1024 bits and above). Callers normally go through read_or_gen_params()
    so that it happens once.
    """
    if bits < MIN_MODULUS_BITS:
        raise ValueError(f"Modulus must have at least {MIN_MODULUS_BITS} bits, got {bits}")

    logger.info("Generating %d-bit commitment parameters", bits)
    p = int(generate_probable_safe_prime(exact_bits=bits))

    while True:
        # Any square other than 1 generates the order-q subgroup
        g = pow(crypto_random.randint(2, p - 2), 2, p)
        if g != 1:
            return DHParams(p, g)


def verify_dh_params(params: DHParams) -> bool:
    """
    Check that params define a usable commitment group.

    Checks:
    1. p is large enough and both p and q = (p - 1) / 2 are probably prime
    2. 1 < g < p - 1 and g has order q

    Returns
    -------
    bool
        True if all checks pass, False otherwise
    """
    try:
        p, g = int(params.p), int(params.g)
    except (TypeError, ValueError, AttributeError):
        return False

    if p.bit_length() < MIN_MODULUS_BITS or p % 2 == 0:
        return False

    q = (p - 1) // 2
    if test_probable_prime(p) != PROBABLY_PRIME or test_probable_prime(q) != PROBABLY_PRIME:
        return False

    if not 1 < g < p - 1:
        return False

    return pow(g, q, p) == 1


def write_dhparams(params: DHParams, path) -> None:
    """Write params to path as two lines of lowercase hex: p, then g."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(f"{params.p:x}\n{params.g:x}\n")


def read_dhparams(path) -> DHParams:
    """
    Read params written by write_dhparams().

    Raises
    ------
    OSError
        If the file cannot be read
    ValueError
        If the file is not two hex lines
    """
    with open(path, "r", encoding="utf-8") as f:
        lines = f.read().split()

    if len(lines) != 2:
        raise ValueError(f"Expected 2 lines in {path}, found {len(lines)}")

    return DHParams(int(lines[0], 16), int(lines[1], 16))


def read_or_gen_params(path, bits: int = DEFAULT_MODULUS_BITS) -> DHParams:
    """
    Read params from path, or generate new ones and write them to path.

    New parameters are generated when the file is missing, unreadable or
    holds parameters that fail verify_dh_params(). A failure to write the
    new file is logged and otherwise ignored.
    """
    try:
        params = read_dhparams(path)
    except (OSError, ValueError) as e:
        logger.info("No usable parameters in %s (%s)", path, e)
    else:
        if verify_dh_params(params):
            return params
        logger.warning("Parameters in %s are invalid, regenerating", path)

    params = gen_dh_params(bits)
    try:
        write_dhparams(params, path)
    except OSError as e:
        logger.warning("Could not save parameters to %s: %s", path, e)
    return params
