"""
Provisioning error taxonomy. Every failure the CLI reports derives from ProvisioningFailure.
"""


class ProvisioningFailure(Exception):
    """Base for anything that aborts a provisioning run."""


class DiscoveryError(ProvisioningFailure):
    """Identity provider unreachable, polling exhausted, or key set document unusable."""


class SigningKeyNotFoundError(DiscoveryError):
    """No key with use=sig and a supported algorithm in the published key set."""


class KeyConversionError(ProvisioningFailure, ValueError):
    """Modulus/exponent cannot be turned into a usable RSA public key."""


class ProvisioningError(ProvisioningFailure):
    """An administrative API call failed. Carries the step name and the response body."""

    def __init__(self, step: str, status_code: int | None = None, body: str = ""):
        self.step = step
        self.status_code = status_code
        self.body = body
        if status_code is None:
            message = f"step '{step}' failed: {body}"
        else:
            message = f"step '{step}' failed: HTTP {status_code}: {body}"
        super().__init__(message)


class GatewayNotReadyError(ProvisioningError):
    def __init__(self, body: str = ""):
        super().__init__("wait-for-gateway", None, body)
