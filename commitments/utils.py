"""
Utility Functions
=================

Group operations and serialization for commitments.

Key Operations:
- Multi-exponentiation: Compute ∏ b_i^{e_i} mod p
- Products: Compute ∏ c_i mod p
- Serialization: Convert group elements and scalars to/from hex strings

Group elements and scalars are plain Python integers; exponentiation is
pow(base, exponent, p).
"""

from typing import Iterable, List


def multiexp(bases: List[int], exponents: List[int], p: int) -> int:
    """
    Compute ∏ bases[i]^{exponents[i]} mod p.

    Parameters
    ----------
    bases : List[int]
        Group elements
    exponents : List[int]
        Non-negative exponents, one per base
    p : int
        The modulus

    Returns
    -------
    int
        The product, or 1 (the identity) for empty input

    Notes
    -----
    This computes the product directly; no special multi-exponentiation
    algorithm is used.
    """
    if len(bases) != len(exponents):
        raise ValueError(f"Length mismatch: {len(bases)} bases, {len(exponents)} exponents")

    result = 1
    for base, exponent in zip(bases, exponents):
        result = (result * pow(base, exponent, p)) % p
    return result


def prod(elems: Iterable[int], p: int) -> int:
    """Compute ∏ elems mod p (1 for empty input)."""
    result = 1
    for elem in elems:
        result = (result * elem) % p
    return result


def to_hex(value: int) -> str:
    """Lowercase hex without prefix, as used on the wire."""
    if value < 0:
        raise ValueError("Cannot serialize a negative group element")
    return format(value, "x")


def from_hex(text: str) -> int:
    """Inverse of to_hex(). Rejects signs, prefixes and empty strings."""
    if not text or not all(c in "0123456789abcdefABCDEF" for c in text):
        raise ValueError(f"Not a hex integer: {text!r}")
    return int(text, 16)
