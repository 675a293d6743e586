"""
Pedersen Commitments
====================

Additively homomorphic commitments over a safe-prime Schnorr group, used by
the meter to commit to readings and by the provider to check bills.

Modules:
--------
- params: Group parameters (generation, validation, parameter file)
- commit: Commitment generation and homomorphic operations
- utils: Multi-exponentiation and hex serialization

Usage:
------
    from commitments import read_or_gen_params, commit, random_a

    params = read_or_gen_params('dhparams.txt')
    a = random_a(params)
    C = commit(params, 42, a)
"""

__version__ = "0.1.0"

from .params import (
    DHParams,
    gen_dh_params,
    verify_dh_params,
    read_dhparams,
    write_dhparams,
    read_or_gen_params,
)
from .commit import random_a, commit, verify_opening, combine, scale, weighted_sum

__all__ = [
    'DHParams',
    'gen_dh_params',
    'verify_dh_params',
    'read_dhparams',
    'write_dhparams',
    'read_or_gen_params',
    'random_a',
    'commit',
    'verify_opening',
    'combine',
    'scale',
    'weighted_sum',
]
