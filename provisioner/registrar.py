"""
Trust registrar: destroy-then-recreate provisioning of the gateway service, routes,
identity record (consumer) and the trust binding (jwt credential).

The admin API has no transactions and its updates of nested credentials are not
reliably idempotent, so every run deletes by name and creates from scratch.
Order is fixed: routes need the service, the binding needs the consumer.
Single writer only; two concurrent runs can interleave deletes and creates.
"""
import logging

from provisioner.errors import ProvisioningError
from provisioner.gateway_admin import GatewayAdmin, segment
from provisioner.models import RouteDescriptor, TrustBinding

logger = logging.getLogger(__name__)


class TrustRegistrar:
    def __init__(
        self,
        admin: GatewayAdmin,
        *,
        service_name: str,
        service_url: str,
        consumer_name: str,
    ):
        self.admin = admin
        self.service_name = service_name
        self.service_url = service_url
        self.consumer_name = consumer_name

    def cleanup(self, owner_identity: str, routes: list[RouteDescriptor]) -> None:
        """Step 1: best-effort deletes. Routes go before the service that owns them."""
        self.admin.delete("delete-binding", f"/jwts/{segment(owner_identity)}")
        for route in routes:
            self.admin.delete(f"delete-route:{route.name}", f"/routes/{segment(route.name)}")
        self.delete_stale_routes()
        self.admin.delete("delete-service", f"/services/{segment(self.service_name)}")
        # consumer delete also drops any credentials still attached to it
        self.admin.delete("delete-consumer", f"/consumers/{segment(self.consumer_name)}")

    def delete_stale_routes(self) -> list[str]:
        """Routes still attached to the service but missing from the current table would block its delete."""
        service_routes = f"/services/{segment(self.service_name)}/routes"
        stale = []
        for route in self.admin.list_all("list-service-routes", service_routes):
            ref = route.get("name") or route["id"]
            self.admin.delete(f"delete-route:{ref}", f"/routes/{segment(ref)}")
            stale.append(ref)
        if stale:
            logger.warning("Removed routes not in the route table: %s", ",".join(stale))
        return stale

    def create_routing(self, routes: list[RouteDescriptor]) -> None:
        """Step 2: service, then each route under it. No enforcement here."""
        self.admin.create("create-service", "/services", {"name": self.service_name, "url": self.service_url})
        for route in routes:
            self.admin.create(
                f"create-route:{route.name}",
                f"/services/{segment(self.service_name)}/routes",
                {"name": route.name, "paths": [route.path_prefix], "strip_path": False},
            )

    def create_identity(self) -> None:
        """Step 3: the consumer that owns the binding."""
        self.admin.create("create-consumer", "/consumers", {"username": self.consumer_name})

    def create_binding(self, binding: TrustBinding) -> None:
        """Step 4: register the PEM key under the owner identity."""
        self.admin.create(
            "create-binding",
            f"/consumers/{segment(self.consumer_name)}/jwt",
            {
                "key": binding.owner_identity,
                "algorithm": binding.algorithm,
                "rsa_public_key": binding.key,
            },
        )

    def provision(
        self,
        key: str,
        owner_identity: str,
        routes: list[RouteDescriptor],
        *,
        algorithm: str = "RS256",
    ) -> TrustBinding:
        """
        Run steps 1-4 in order. Any failure raises ProvisioningError naming the step;
        re-running is the recovery path.
        """
        if not owner_identity:
            raise ProvisioningError("validate-input", None, "owner identity must be non-empty")
        names = [r.name for r in routes]
        if len(set(names)) != len(names):
            raise ProvisioningError("validate-input", None, f"duplicate route names: {names}")
        binding = TrustBinding(owner_identity=owner_identity, key=key, algorithm=algorithm)
        logger.info(
            "Provisioning service=%s consumer=%s owner=%s routes=%s",
            self.service_name, self.consumer_name, owner_identity, ",".join(names),
        )
        self.cleanup(owner_identity, routes)
        self.create_routing(routes)
        self.create_identity()
        self.create_binding(binding)
        return binding
