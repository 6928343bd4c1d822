"""
Provisioner configuration. Values from the environment with local-development defaults.
Endpoints and names only; no credentials live here.
"""
import os

from provisioner.models import RouteDescriptor


def _float_env(name: str, default: str) -> float:
    value = float(os.environ.get(name, default))
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _int_env(name: str, default: str) -> int:
    value = int(os.environ.get(name, default))
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


# Gateway administrative API (provisioning) and proxy (smoke checks)
GATEWAY_ADMIN_URL = os.environ.get("GATEWAY_ADMIN_URL", "http://127.0.0.1:8001").rstrip("/")
GATEWAY_PROXY_URL = os.environ.get("GATEWAY_PROXY_URL", "http://127.0.0.1:8081").rstrip("/")

# Identity provider: issuer is what tokens carry in "iss"; JWKS and token URLs may be internal addresses
IDP_ISSUER = os.environ.get("IDP_ISSUER", "http://127.0.0.1:8080/realms/demo-realm").rstrip("/")
IDP_JWKS_URL = os.environ.get("IDP_JWKS_URL", f"{IDP_ISSUER}/protocol/openid-connect/certs")
IDP_TOKEN_URL = os.environ.get("IDP_TOKEN_URL", f"{IDP_ISSUER}/protocol/openid-connect/token")
# Empty = skip the provider health check and rely on key set polling alone
IDP_READY_URL = os.environ.get("IDP_READY_URL", "").strip()
IDP_CLIENT_ID = os.environ.get("IDP_CLIENT_ID", "backend-app")

# Gateway objects created on every run (destroyed first by name)
BACKEND_SERVICE_NAME = os.environ.get("BACKEND_SERVICE_NAME", "backend-service")
BACKEND_SERVICE_URL = os.environ.get("BACKEND_SERVICE_URL", "http://app:3000")
CONSUMER_NAME = os.environ.get("CONSUMER_NAME", "idp-users")

# Join key between token and binding: "iss" binds the issuer URL, "kid" binds the key id.
# Drives both the credential key and the enforcement rule's key_claim_name; checked when provisioning.
TRUST_KEY_CLAIM = os.environ.get("TRUST_KEY_CLAIM", "iss").strip()

HTTP_TIMEOUT_SECONDS = _float_env("HTTP_TIMEOUT_SECONDS", "10")
POLL_INTERVAL_SECONDS = _float_env("POLL_INTERVAL_SECONDS", "5")
POLL_MAX_ATTEMPTS = _int_env("POLL_MAX_ATTEMPTS", "60")

ROUTES = [
    RouteDescriptor("public-route", "/public", requires_signature_check=False),
    RouteDescriptor("profile-route", "/profile", requires_signature_check=True),
    RouteDescriptor("user-route", "/user", requires_signature_check=True),
    RouteDescriptor("admin-route", "/admin", requires_signature_check=True),
]
