"""
Thin wrapper over the gateway administrative API (Kong-style REST collections).
Every call carries a step name so failures can be reported with context.
Deletes and listings tolerate 404; everything else that is not 2xx is fatal.
"""
import logging
import time
from typing import Any, Callable
from urllib.parse import quote

import httpx

from provisioner.discovery import wait_until_ready
from provisioner.errors import DiscoveryError, GatewayNotReadyError, ProvisioningError

logger = logging.getLogger(__name__)


def segment(value: str) -> str:
    """Percent-encode one path segment (issuer URLs contain '/' and ':')."""
    return quote(value, safe="")


class GatewayAdmin:
    """Administrative API client. The httpx.Client is owned by the caller."""

    def __init__(self, http: httpx.Client, base_url: str):
        self.http = http
        self.base_url = base_url.rstrip("/")

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

    def _send(self, step: str, method: str, path: str, payload: dict | None = None) -> httpx.Response:
        try:
            return self.http.request(method, self._url(path), json=payload)
        except httpx.HTTPError as e:
            raise ProvisioningError(step, None, f"{type(e).__name__}: {e}") from e

    def wait_until_ready(
        self,
        *,
        attempts: int,
        interval: float,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        try:
            wait_until_ready(self.http, self._url("/status"), attempts=attempts, interval=interval, sleep=sleep)
        except DiscoveryError as e:
            raise GatewayNotReadyError(str(e)) from e

    def create(self, step: str, path: str, payload: dict) -> dict[str, Any]:
        r = self._send(step, "POST", path, payload)
        if not r.is_success:
            raise ProvisioningError(step, r.status_code, r.text)
        logger.info("%s: created %s", step, path)
        try:
            return r.json()
        except ValueError:
            return {}

    def delete(self, step: str, path: str) -> bool:
        """Returns False when there was nothing to delete."""
        r = self._send(step, "DELETE", path)
        if r.status_code == 404:
            logger.debug("%s: %s not present", step, path)
            return False
        if not r.is_success:
            raise ProvisioningError(step, r.status_code, r.text)
        logger.info("%s: deleted %s", step, path)
        return True

    def list_all(self, step: str, path: str) -> list[dict[str, Any]]:
        """
        Every entity in a collection, following the `next` page links.
        A missing parent (404) reads as an empty collection.
        """
        entities: list[dict[str, Any]] = []
        page_path: str | None = path
        while page_path:
            r = self._send(step, "GET", page_path)
            if r.status_code == 404:
                logger.debug("%s: %s not present", step, page_path)
                break
            if not r.is_success:
                raise ProvisioningError(step, r.status_code, r.text)
            try:
                page = r.json()
            except ValueError as e:
                raise ProvisioningError(step, r.status_code, f"invalid listing body: {r.text}") from e
            entities.extend(page.get("data") or [])
            page_path = page.get("next")
        return entities
