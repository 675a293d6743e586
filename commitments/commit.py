"""
Commitment Generation
=====================

Pedersen commitments over the order-q subgroup of Z_p^*:

    Commit(m, a) := g^m · h^a mod p

The scheme is additively homomorphic in both the value and the blinding
factor:

    Commit(m1, a1) · Commit(m2, a2) = Commit(m1 + m2, a1 + a2)
    Commit(m, a)^k                  = Commit(k·m, k·a)

Exponents live in Z_q, so values are only bound modulo q. Callers that need
to compare integers larger than q must range-check them first.
"""

from typing import List

from Crypto.Random import random as crypto_random

from .params import DHParams
from .utils import multiexp, prod


def random_a(params: DHParams) -> int:
    """
    Sample a fresh blinding factor uniformly from [1, q).

    Uses pycryptodome's cryptographically secure generator.
    """
    return crypto_random.randint(1, params.q - 1)


def commit(params: DHParams, m: int, a: int) -> int:
    """
    Commit to value m with blinding factor a.

    Parameters
    ----------
    params : DHParams
        The commitment group
    m : int
        The committed value (reduced mod q)
    a : int
        The blinding factor (reduced mod q)

    Returns
    -------
    int
        C = g^m · h^a mod p

    Examples
    --------
    >>> a = random_a(params)
    >>> C = commit(params, 42, a)
    """
    q = params.q
    return (pow(params.g, m % q, params.p) * pow(params.h, a % q, params.p)) % params.p


def verify_opening(params: DHParams, commitment: int, m: int, a: int) -> bool:
    """Check that (m, a) opens commitment."""
    return commit(params, m, a) == commitment


def combine(params: DHParams, commitments: List[int]) -> int:
    """Homomorphic sum: the product of the commitments mod p."""
    return prod(commitments, params.p)


def scale(params: DHParams, commitment: int, k: int) -> int:
    """Homomorphic scalar multiplication: commitment^k mod p."""
    return pow(commitment, k % params.q, params.p)


def weighted_sum(params: DHParams, commitments: List[int], weights: List[int]) -> int:
    """
    Homomorphic weighted sum of commitments.

    Returns ∏ commitments[i]^{weights[i]}, a commitment to Σ weights[i]·m_i
    under blinding factor Σ weights[i]·a_i.
    """
    return multiexp(commitments, [w % params.q for w in weights], params.p)
