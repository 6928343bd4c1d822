"""
Key material conversion: JWK-style (n, e) -> PEM SubjectPublicKeyInfo.
The gateway registers RSA credentials as PEM text, while the identity provider only
publishes base64url modulus/exponent pairs. Pure functions; no network, no state.
"""
import base64
import binascii
import re

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from provisioner.errors import KeyConversionError
from provisioner.models import SigningKeyDescriptor

SUPPORTED_KEY_SIZES = (2048, 3072, 4096)

_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]*$")


def b64url_decode(value: str) -> bytes:
    """
    Decode unpadded base64url. Padding is restored from the length: mod 4 of 2 gets "==",
    3 gets "=", 1 is impossible for any byte string and is rejected rather than truncated.
    """
    if not value:
        raise KeyConversionError("empty base64url value")
    if not _B64URL_RE.match(value):
        raise KeyConversionError("base64url value contains characters outside the url-safe alphabet")
    remainder = len(value) % 4
    if remainder == 1:
        raise KeyConversionError(f"invalid base64url length {len(value)} (length mod 4 == 1)")
    padded = value + "=" * ((4 - remainder) % 4)
    try:
        return base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as e:
        raise KeyConversionError(f"malformed base64url value: {e}") from e


def rsa_public_key_pem(modulus: bytes, exponent: bytes) -> str:
    """
    Encode big-endian unsigned (modulus, exponent) as a PEM "PUBLIC KEY" block
    (64-character body lines, newline before the footer). Same input, same text.
    """
    n = int.from_bytes(modulus, "big")
    e = int.from_bytes(exponent, "big")
    if e <= 0:
        raise KeyConversionError("RSA exponent must be a positive integer")
    bits = n.bit_length()
    if bits not in SUPPORTED_KEY_SIZES:
        raise KeyConversionError(
            f"unsupported RSA modulus size {bits} bits (supported: {', '.join(map(str, SUPPORTED_KEY_SIZES))})"
        )
    try:
        public_key = rsa.RSAPublicNumbers(e, n).public_key()
    except ValueError as exc:
        raise KeyConversionError(f"invalid RSA public numbers: {exc}") from exc
    pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return pem.decode("ascii")


def jwk_to_pem(n: str, e: str) -> str:
    """Convert the base64url "n"/"e" members of an RSA JWK to PEM."""
    return rsa_public_key_pem(b64url_decode(n), b64url_decode(e))


def descriptor_to_pem(descriptor: SigningKeyDescriptor) -> str:
    return rsa_public_key_pem(descriptor.modulus, descriptor.exponent)
