"""
Billing Utility Functions
=========================

This module provides the signature primitive and helpers shared by the
three billing roles:
- ECDSA key generation and PEM key files
- Signing in "combined" form: the signed blob carries the message after the
  signature, and opening it returns the message
- Stringification of signed blobs for the line-oriented wire format

Security Notes:
---------------
- We use ECDSA over NIST P-256 with SHA-256
- Signatures are fixed width (r || s, 64 bytes), so a signed blob is always
  SIGNATURE_BYTES longer than its message
- open_signed() never returns unauthenticated bytes: it raises instead
"""

import hashlib
from typing import Tuple

from ecdsa import BadSignatureError, NIST256p, SigningKey, VerifyingKey
from ecdsa.util import sigdecode_string, sigencode_string

from billing_errors import AuthenticationError, ProtocolError

CURVE = NIST256p
SIGNATURE_BYTES = 2 * CURVE.baselen


def generate_signing_keys() -> Tuple[SigningKey, VerifyingKey]:
    """
    Generate ECDSA signing and verification keys.

    Returns
    -------
    sk : SigningKey
        The secret signing key
    vk : VerifyingKey
        The public verification key

    Examples
    --------
    >>> meter_sk, meter_pk = generate_signing_keys()
    >>> # the meter keeps meter_sk, customer and provider get meter_pk
    """
    sk = SigningKey.generate(curve=CURVE)
    vk = sk.get_verifying_key()
    return sk, vk


def sign_message(sk: SigningKey, message: bytes) -> bytes:
    """
    Sign message and return signature || message.

    Parameters
    ----------
    sk : SigningKey
        The signer's secret key
    message : bytes
        The message to sign

    Returns
    -------
    bytes
        SIGNATURE_BYTES of signature followed by the message
    """
    signature = sk.sign(message, hashfunc=hashlib.sha256, sigencode=sigencode_string)
    return signature + message


def open_signed(vk: VerifyingKey, signed: bytes) -> bytes:
    """
    Verify a blob produced by sign_message() and return its message.

    Raises
    ------
    AuthenticationError
        If the blob is too short or the signature does not verify under vk
    """
    if len(signed) < SIGNATURE_BYTES:
        raise AuthenticationError(f"Signed blob too short: {len(signed)} bytes")

    signature, message = signed[:SIGNATURE_BYTES], signed[SIGNATURE_BYTES:]
    try:
        vk.verify(signature, message, hashfunc=hashlib.sha256, sigdecode=sigdecode_string)
    except BadSignatureError as e:
        raise AuthenticationError("Signature verification failed") from e
    return message


def stringify_bytes(data: bytes) -> str:
    """Each byte in decimal followed by a space: b'\\x00\\x06' -> '0 6 '."""
    return "".join(f"{byte} " for byte in data)


def unstringify_bytes(text: str) -> bytes:
    """
    Inverse of stringify_bytes().

    Raises
    ------
    ProtocolError
        If a token is not a decimal number in [0, 255]
    """
    try:
        return bytes(int(token, 10) for token in text.split())
    except ValueError as e:
        raise ProtocolError(f"Malformed byte string: {e}") from e


def save_signing_key(sk: SigningKey, path) -> None:
    """Write sk to path and its public key to path + '.pub', both PEM."""
    with open(path, "wb") as f:
        f.write(sk.to_pem())
    with open(f"{path}.pub", "wb") as f:
        f.write(sk.get_verifying_key().to_pem())


def load_signing_key(path) -> SigningKey:
    with open(path, "rb") as f:
        return SigningKey.from_pem(f.read())


def load_verifying_key(path) -> VerifyingKey:
    with open(path, "rb") as f:
        return VerifyingKey.from_pem(f.read())


def key_gen_to_file(path) -> VerifyingKey:
    """Generate a keypair, save it with save_signing_key() and return the public key."""
    sk, vk = generate_signing_keys()
    save_signing_key(sk, path)
    return vk
