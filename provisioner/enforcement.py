"""
Per-route signature enforcement. Attaches the gateway's jwt plugin to one route;
routes never passed here stay open (the public endpoint).
"""
import logging

from provisioner.gateway_admin import GatewayAdmin, segment
from provisioner.models import RouteDescriptor

logger = logging.getLogger(__name__)


class EnforcementConfigurator:
    def __init__(self, admin: GatewayAdmin, *, key_claim_name: str):
        # must match how the binding's owner identity was chosen (iss or kid)
        self.admin = admin
        self.key_claim_name = key_claim_name

    def enforce(self, route: RouteDescriptor) -> None:
        """Route must already exist (created by TrustRegistrar)."""
        self.admin.create(
            f"enforce:{route.name}",
            f"/routes/{segment(route.name)}/plugins",
            {
                "name": "jwt",
                "config": {
                    "key_claim_name": self.key_claim_name,
                    "claims_to_verify": ["exp"],
                },
            },
        )
        logger.info("Signature verification enforced on route %s (%s)", route.name, route.path_prefix)

    def enforce_all(self, routes: list[RouteDescriptor]) -> list[str]:
        """Enforce every route flagged requires_signature_check; returns their names."""
        enforced = []
        for route in routes:
            if route.requires_signature_check:
                self.enforce(route)
                enforced.append(route.name)
        return enforced
