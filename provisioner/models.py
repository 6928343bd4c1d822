"""
Provisioning data model: signing key descriptors, trust bindings, route descriptors.
Plain frozen dataclasses; nothing here talks to the network.
"""
from dataclasses import dataclass
from enum import Enum


class KeyUsage(str, Enum):
    SIGNING = "sig"
    ENCRYPTION = "enc"


@dataclass(frozen=True)
class SigningKeyDescriptor:
    """One entry of the identity provider's key set, with n/e already base64url-decoded."""

    key_id: str
    algorithm: str
    modulus: bytes
    exponent: bytes
    usage: KeyUsage


@dataclass(frozen=True)
class TrustBinding:
    # owner_identity is the join key the gateway matches against (issuer URL or kid)
    owner_identity: str
    key: str  # PEM text
    algorithm: str


@dataclass(frozen=True)
class RouteDescriptor:
    name: str
    path_prefix: str
    requires_signature_check: bool = False
