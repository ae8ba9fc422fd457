# Overview: Authenticated, paged HTTP client for the upstream POS REST API.

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Iterator

import requests
from flask import current_app

from ..config import token_url
from . import credential_service
from .upstream_errors import (
    UpstreamCancelled,
    UpstreamDecodeError,
    UpstreamError,
    UpstreamPermanent,
    UpstreamTransient,
    classify_status,
)
from .upstream_schemas import TokenGrant

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_TIMEOUT_SECONDS = 30.0


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500] if response.text else None


class UpstreamClient:
    """
    Thin client over `requests.Session`.

    Every request reads the bearer token from the credential store, so a
    refresh performed elsewhere is picked up on the next call. A 401 forces
    one refresh and one retry; anything else surfaces as an UpstreamError.
    """

    def __init__(
        self,
        *,
        base_url: str,
        retailer: str,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_endpoint: str | None = None,
        scopes: str = "PublicApi.Access",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
        retry_delay: float = 2.0,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.retailer = retailer
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_endpoint = token_endpoint or f"{self.base_url}/connect/token"
        self.scopes = scopes
        self.timeout = timeout
        self.page_size = page_size
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self._sleep = sleep
        self._cancelled = threading.Event()

    @classmethod
    def from_config(cls, config, session: requests.Session | None = None) -> "UpstreamClient":
        return cls(
            base_url=config.get("UPSTREAM_BASE_URL"),
            retailer=config.get("UPSTREAM_RETAILER"),
            client_id=config.get("UPSTREAM_CLIENT_ID"),
            client_secret=config.get("UPSTREAM_CLIENT_SECRET"),
            token_endpoint=token_url(config),
            scopes=config.get("UPSTREAM_SCOPES") or "PublicApi.Access",
            timeout=config.get("UPSTREAM_TIMEOUT_SECONDS") or DEFAULT_TIMEOUT_SECONDS,
            page_size=config.get("UPSTREAM_PAGE_SIZE") or DEFAULT_PAGE_SIZE,
            retry_delay=config.get("UPSTREAM_RETRY_DELAY_SECONDS", 2.0),
            session=session,
        )

    # Cancellation

    def cancel(self) -> None:
        """Abort at the next request boundary; an in-flight call finishes or times out."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _check_cancelled(self, pages_fetched: int | None = None) -> None:
        if self._cancelled.is_set():
            raise UpstreamCancelled("Upstream client was cancelled", pages_fetched=pages_fetched)

    # Requests

    def _headers(self, token: str) -> dict:
        return {
            "Retailer": self.retailer,
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    def _send(self, method: str, path: str, query: dict | None, body: Any, token: str) -> requests.Response:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            return self.session.request(
                method,
                url,
                params=query,
                json=body,
                headers=self._headers(token),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamTransient(f"{method} {path} failed: {exc}") from exc

    def request(self, method: str, path: str, query: dict | None = None, body: Any = None) -> Any:
        """
        Issue one authenticated call and return the decoded JSON body.

        Raises CredentialMissing when no token is stored, and the
        UpstreamError family for HTTP or decode failures.
        """
        self._check_cancelled()
        method = method.upper()
        token = credential_service.read()
        response = self._send(method, path, query, body, token)

        if response.status_code == 401:
            logger.warning("%s %s returned 401; refreshing token and retrying once", method, path)
            self.refresh()
            self._check_cancelled()
            response = self._send(method, path, query, body, credential_service.read())

        if response.status_code >= 400:
            error_cls = classify_status(response.status_code)
            raise error_cls(
                f"{method} {path} returned HTTP {response.status_code}",
                status=response.status_code,
                body=_response_body(response),
            )

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamDecodeError(
                f"{method} {path} returned a non-JSON body",
                status=response.status_code,
                body=response.text[:500],
            ) from exc

    def get(self, path: str, query: dict | None = None) -> Any:
        return self.request("GET", path, query)

    def put(self, path: str, body: Any) -> Any:
        return self.request("PUT", path, body=body)

    # Paging

    def _get_page(self, path: str, query: dict, pages_fetched: int) -> Any:
        try:
            return self.get(path, query)
        except UpstreamTransient as exc:
            logger.warning(
                "GET %s at currentItem=%s failed (%s); retrying in %.1fs",
                path,
                query.get("currentItem"),
                exc,
                self.retry_delay,
            )
            self._sleep(self.retry_delay)
            self._check_cancelled(pages_fetched)
            return self.get(path, query)

    def iter_pages(self, path: str, query: dict | None = None, *, page_delay: float = 0.0) -> Iterator[list]:
        """
        Yield each page's `data[]` in upstream order.

        Offset paging: `currentItem` advances by the page size until a page
        comes back empty or the running count reaches `total`. A transient
        failure is retried once; a second failure is raised with
        `pages_fetched` set.
        """
        base_query = dict(query or {})
        cursor = 0
        fetched = 0
        pages = 0
        while True:
            self._check_cancelled(pages)
            page_query = {**base_query, "pageSize": self.page_size, "currentItem": cursor}
            try:
                payload = self._get_page(path, page_query, pages)
            except UpstreamError as exc:
                exc.pages_fetched = pages
                raise

            if not isinstance(payload, dict):
                raise UpstreamDecodeError(f"GET {path} page is not an object", pages_fetched=pages)
            data = payload.get("data") or []
            if not isinstance(data, list):
                raise UpstreamDecodeError(f"GET {path} page has a non-list 'data'", pages_fetched=pages)
            if not data:
                break

            pages += 1
            fetched += len(data)
            total = payload.get("total")
            logger.info("GET %s currentItem=%d: %d rows (%d/%s)", path, cursor, len(data), fetched, total)
            yield data

            if isinstance(total, (int, float)) and not isinstance(total, bool):
                if fetched >= total:
                    break
            elif len(data) < self.page_size:
                break

            cursor += self.page_size
            if page_delay:
                self._sleep(page_delay)

    def page_all(self, path: str, query: dict | None = None, *, page_delay: float = 0.0) -> list:
        results: list = []
        for data in self.iter_pages(path, query, page_delay=page_delay):
            results.extend(data)
        return results

    # Token

    def refresh(self) -> credential_service.StoredCredential:
        """
        OAuth2 client-credentials grant; the new token replaces the stored one.

        Safe to call repeatedly; every call simply stores the newest grant.
        """
        if not self.client_id or not self.client_secret:
            raise UpstreamPermanent("Upstream client credentials are not configured")
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scopes": self.scopes,
        }
        try:
            response = self.session.post(
                self.token_endpoint,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamTransient(f"Token request failed: {exc}") from exc

        if response.status_code >= 500:
            raise UpstreamTransient(
                f"Token endpoint returned HTTP {response.status_code}",
                status=response.status_code,
                body=_response_body(response),
            )
        if response.status_code >= 400:
            raise UpstreamPermanent(
                f"Token endpoint returned HTTP {response.status_code}",
                status=response.status_code,
                body=_response_body(response),
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamDecodeError("Token endpoint returned a non-JSON body", status=response.status_code) from exc

        grant = TokenGrant.from_api(payload)
        stored = credential_service.write(grant.access_token, grant.expires_in)
        logger.info("Refreshed upstream token (expires_in=%ss)", grant.expires_in)
        return stored


def build_client(session: requests.Session | None = None) -> UpstreamClient:
    """Client configured from the current app."""
    return UpstreamClient.from_config(current_app.config, session=session)


