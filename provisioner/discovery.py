"""
Discovery client: readiness polling and signing key selection from the identity
provider's published key set (JWKS). Polling is bounded; nothing here loops forever.
"""
import logging
import time
from typing import Any, Callable

import httpx

from provisioner.errors import DiscoveryError, SigningKeyNotFoundError
from provisioner.keys import b64url_decode
from provisioner.models import KeyUsage, SigningKeyDescriptor

logger = logging.getLogger(__name__)

# RSA-SHA256 class only: the gateway binding is registered as an RSA PEM key
SUPPORTED_ALGORITHMS = frozenset({"RS256"})


def wait_until_ready(
    http: httpx.Client,
    url: str,
    *,
    attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Poll url until it answers 2xx. Raises DiscoveryError once attempts are exhausted."""
    last_error = "no attempt made"
    for attempt in range(1, attempts + 1):
        try:
            r = http.get(url)
        except httpx.HTTPError as e:
            last_error = f"{type(e).__name__}: {e}"
        else:
            if r.is_success:
                logger.info("%s ready after %d attempt(s)", url, attempt)
                return
            last_error = f"HTTP {r.status_code}"
        logger.warning("%s not ready (attempt %d/%d): %s", url, attempt, attempts, last_error)
        if attempt < attempts:
            sleep(interval)
    raise DiscoveryError(f"{url} not ready after {attempts} attempts: {last_error}")


def _fetch_key_set(
    http: httpx.Client,
    jwks_url: str,
    *,
    attempts: int,
    interval: float,
    sleep: Callable[[float], None],
) -> list[dict[str, Any]]:
    last_error = "no attempt made"
    for attempt in range(1, attempts + 1):
        try:
            r = http.get(jwks_url, headers={"Accept": "application/json"})
            if r.is_success:
                document = r.json()
                keys = document.get("keys") if isinstance(document, dict) else None
                if isinstance(keys, list):
                    return keys
                last_error = "response has no 'keys' array"
            else:
                last_error = f"HTTP {r.status_code}"
        except httpx.HTTPError as e:
            last_error = f"{type(e).__name__}: {e}"
        except ValueError as e:
            last_error = f"invalid JSON: {e}"
        logger.warning("Key set fetch from %s failed (attempt %d/%d): %s", jwks_url, attempt, attempts, last_error)
        if attempt < attempts:
            sleep(interval)
    raise DiscoveryError(f"could not fetch key set from {jwks_url} after {attempts} attempts: {last_error}")


def select_signing_key(keys: list[dict[str, Any]], *, strict: bool = False) -> dict[str, Any]:
    """
    First entry (provider order) with use=sig and a supported alg.
    More than one candidate is logged as a warning, or rejected when strict.
    """
    candidates = [
        k for k in keys
        if isinstance(k, dict) and k.get("use") == KeyUsage.SIGNING.value and k.get("alg") in SUPPORTED_ALGORITHMS
    ]
    if not candidates:
        raise SigningKeyNotFoundError(
            f"no signing key (use=sig, alg in {sorted(SUPPORTED_ALGORITHMS)}) among {len(keys)} published key(s)"
        )
    if len(candidates) > 1:
        kids = [str(k.get("kid")) for k in candidates]
        if strict:
            raise DiscoveryError(f"ambiguous signing keys: {', '.join(kids)}")
        logger.warning("Multiple signing keys published (%s); selecting first: %s", ", ".join(kids), kids[0])
    return candidates[0]


def to_descriptor(entry: dict[str, Any]) -> SigningKeyDescriptor:
    kid = entry.get("kid")
    if not isinstance(kid, str) or not kid:
        raise DiscoveryError("selected signing key has no 'kid'")
    n = entry.get("n")
    e = entry.get("e")
    if not isinstance(n, str) or not isinstance(e, str):
        raise DiscoveryError(f"signing key {kid} has no RSA 'n'/'e' members")
    return SigningKeyDescriptor(
        key_id=kid,
        algorithm=entry["alg"],
        modulus=b64url_decode(n),
        exponent=b64url_decode(e),
        usage=KeyUsage(entry["use"]),
    )


def fetch_signing_key(
    http: httpx.Client,
    jwks_url: str,
    *,
    attempts: int,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    strict: bool = False,
) -> SigningKeyDescriptor:
    """
    Fetch the key set (retrying only the fetch) and return the active signing key.
    Selection and decoding failures are final.
    """
    keys = _fetch_key_set(http, jwks_url, attempts=attempts, interval=interval, sleep=sleep)
    descriptor = to_descriptor(select_signing_key(keys, strict=strict))
    logger.info("Selected signing key kid=%s alg=%s", descriptor.key_id, descriptor.algorithm)
    return descriptor
