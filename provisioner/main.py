"""
Provisioner CLI: fetch the identity provider's signing key, register it with the
gateway, and attach signature enforcement to the protected routes.
Run once per deployment, before user traffic; never two runs at once against one gateway.
"""
import logging
import sys
import time
from typing import Callable

import httpx
import typer

from provisioner import config
from provisioner.discovery import fetch_signing_key, wait_until_ready
from provisioner.enforcement import EnforcementConfigurator
from provisioner.errors import ProvisioningError, ProvisioningFailure
from provisioner.gateway_admin import GatewayAdmin
from provisioner.keys import descriptor_to_pem
from provisioner.models import RouteDescriptor, SigningKeyDescriptor, TrustBinding
from provisioner.registrar import TrustRegistrar
from provisioner.smoke import fetch_access_token, run_checks

logger = logging.getLogger(__name__)

app = typer.Typer(help="Gateway trust provisioning.", no_args_is_help=True)


def owner_identity_for(key_claim: str, issuer: str, descriptor: SigningKeyDescriptor) -> str:
    """The binding key the gateway will look up: issuer URL for "iss", key id for "kid"."""
    if key_claim == "iss":
        return issuer
    if key_claim == "kid":
        return descriptor.key_id
    raise ProvisioningError("validate-input", None, f"key claim must be 'iss' or 'kid', got {key_claim!r}")


def run_provisioning(
    http: httpx.Client,
    *,
    admin_url: str = config.GATEWAY_ADMIN_URL,
    jwks_url: str = config.IDP_JWKS_URL,
    issuer: str = config.IDP_ISSUER,
    idp_ready_url: str = config.IDP_READY_URL,
    key_claim: str = config.TRUST_KEY_CLAIM,
    routes: list[RouteDescriptor] = config.ROUTES,
    service_name: str = config.BACKEND_SERVICE_NAME,
    service_url: str = config.BACKEND_SERVICE_URL,
    consumer_name: str = config.CONSUMER_NAME,
    attempts: int = config.POLL_MAX_ATTEMPTS,
    interval: float = config.POLL_INTERVAL_SECONDS,
    strict: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> TrustBinding:
    """
    Discovery -> conversion -> registration -> enforcement, strictly in that order.
    Raises a ProvisioningFailure subclass on the first failing step.
    """
    admin = GatewayAdmin(http, admin_url)
    admin.wait_until_ready(attempts=attempts, interval=interval, sleep=sleep)
    if idp_ready_url:
        wait_until_ready(http, idp_ready_url, attempts=attempts, interval=interval, sleep=sleep)

    descriptor = fetch_signing_key(http, jwks_url, attempts=attempts, interval=interval, sleep=sleep, strict=strict)
    pem = descriptor_to_pem(descriptor)
    owner = owner_identity_for(key_claim, issuer, descriptor)

    registrar = TrustRegistrar(
        admin,
        service_name=service_name,
        service_url=service_url,
        consumer_name=consumer_name,
    )
    binding = registrar.provision(pem, owner, routes, algorithm=descriptor.algorithm)

    enforced = EnforcementConfigurator(admin, key_claim_name=key_claim).enforce_all(routes)
    logger.info("Provisioning complete: kid=%s owner=%s enforced=%s", descriptor.key_id, owner, ",".join(enforced))
    return binding


def _http_client() -> httpx.Client:
    return httpx.Client(timeout=config.HTTP_TIMEOUT_SECONDS)


def _fail(message: str) -> typer.Exit:
    typer.echo(message, err=True)
    return typer.Exit(1)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@app.command()
def provision(
    admin_url: str = typer.Option(config.GATEWAY_ADMIN_URL, help="Gateway administrative API base URL."),
    jwks_url: str = typer.Option(config.IDP_JWKS_URL, help="Identity provider key set URL."),
    issuer: str = typer.Option(config.IDP_ISSUER, help="Issuer URL carried in tokens."),
    key_claim: str = typer.Option(config.TRUST_KEY_CLAIM, help="Join key: 'iss' or 'kid'."),
    strict_key_selection: bool = typer.Option(
        False, "--strict-key-selection", help="Fail instead of warning when several signing keys match."
    ),
) -> None:
    """Register the identity provider's signing key and enforce it on protected routes."""
    if key_claim not in ("iss", "kid"):
        raise typer.BadParameter(f"must be 'iss' or 'kid', got {key_claim!r}", param_hint="--key-claim")
    try:
        with _http_client() as http:
            binding = run_provisioning(
                http,
                admin_url=admin_url,
                jwks_url=jwks_url,
                issuer=issuer.rstrip("/"),
                key_claim=key_claim,
                strict=strict_key_selection,
            )
    except ProvisioningFailure as e:
        raise _fail(f"provisioning failed: {e}") from e
    typer.echo(f"Provisioned binding for {binding.owner_identity} ({binding.algorithm})")


@app.command("show-key")
def show_key(
    jwks_url: str = typer.Option(config.IDP_JWKS_URL, help="Identity provider key set URL."),
) -> None:
    """Print the selected signing key as PEM without touching the gateway."""
    try:
        with _http_client() as http:
            descriptor = fetch_signing_key(
                http, jwks_url, attempts=config.POLL_MAX_ATTEMPTS, interval=config.POLL_INTERVAL_SECONDS
            )
        pem = descriptor_to_pem(descriptor)
    except ProvisioningFailure as e:
        raise _fail(f"key discovery failed: {e}") from e
    typer.echo(f"kid: {descriptor.key_id}")
    typer.echo(f"alg: {descriptor.algorithm}")
    typer.echo(pem, nl=False)


@app.command()
def smoke(
    gateway_url: str = typer.Option(config.GATEWAY_PROXY_URL, help="Gateway proxy base URL."),
    token_url: str = typer.Option(config.IDP_TOKEN_URL, help="Identity provider token endpoint."),
    client_id: str = typer.Option(config.IDP_CLIENT_ID, help="Public client used for the password grant."),
    user: str = typer.Option("alice", help="Account holding only the user role."),
    user_password: str = typer.Option(..., envvar="SMOKE_USER_PASSWORD", help="Password for --user."),
    admin: str = typer.Option("bob", help="Account holding only the admin role."),
    admin_password: str = typer.Option(..., envvar="SMOKE_ADMIN_PASSWORD", help="Password for --admin."),
) -> None:
    """Exercise every backend endpoint through the gateway with both roles."""
    try:
        with _http_client() as http:
            user_token = fetch_access_token(http, token_url, client_id=client_id, username=user, password=user_password)
            admin_token = fetch_access_token(
                http, token_url, client_id=client_id, username=admin, password=admin_password
            )
            results = run_checks(http, gateway_url, user_token=user_token, admin_token=admin_token)
    except (httpx.HTTPError, ValueError) as e:
        raise _fail(f"smoke checks aborted: {e}") from e
    failures = [r for r in results if not r.passed]
    for r in results:
        typer.echo(f"{'PASS' if r.passed else 'FAIL'} {r.name}: {r.detail}")
    if failures:
        raise _fail(f"{len(failures)} of {len(results)} checks failed")
    typer.echo(f"All {len(results)} checks passed")


if __name__ == "__main__":
    app()
