"""
Shared fixtures for provisioner tests: RSA keys, JWKS documents, and an in-memory
gateway admin API served through httpx.MockTransport.
"""
import httpx
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key

from gateway_fakes import JWKS_URL, FakeGateway, make_jwk


@pytest.fixture(scope="session")
def rsa_key():
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture(scope="session")
def other_rsa_key():
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def jwks(rsa_key):
    """Mutable key set served at JWKS_URL; tests may replace its "keys"."""
    return {"keys": [make_jwk(rsa_key)]}


@pytest.fixture
def http(gateway, jwks):
    """httpx.Client routing admin calls to the fake gateway and IdP calls to the JWKS dict."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "gateway-admin.test":
            return gateway.handler(request)
        if str(request.url) == JWKS_URL:
            return httpx.Response(200, json=jwks)
        return httpx.Response(404, json={"error": "not found"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    yield client
    client.close()


@pytest.fixture
def sleeps():
    """Recorded sleep intervals; pass sleeps.append wherever a sleep callable is taken."""
    return []
