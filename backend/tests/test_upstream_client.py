"""
Upstream client tests: token refresh, headers, 401 retry, pager termination
and the transient/permanent error split.
"""

import pytest
import requests

from posbridge.services import credential_service
from posbridge.services.upstream_errors import (
    UpstreamAuthExpired,
    UpstreamCancelled,
    UpstreamDecodeError,
    UpstreamPermanent,
    UpstreamTransient,
)
from tests.conftest import TOKEN_URL, page


def _rows(start, count):
    return [{"id": start + i} for i in range(count)]


class TestRefresh:
    def test_refresh_stores_new_token(self, upstream, fake_upstream):
        """Refresh with client credentials replaces the stored token."""
        fake_upstream.add_token("T2", 3600)

        upstream.refresh()

        assert credential_service.read() == "T2"
        call = fake_upstream.token_calls[0]
        assert call["url"] == TOKEN_URL
        assert call["data"] == {
            "grant_type": "client_credentials",
            "client_id": "k",
            "client_secret": "s",
            "scopes": "PublicApi.Access",
        }
        assert call["headers"]["Content-Type"] == "application/x-www-form-urlencoded"

    def test_refresh_is_idempotent(self, upstream, fake_upstream):
        fake_upstream.add_token("T2", 3600).add_token("T3", 3600)

        upstream.refresh()
        upstream.refresh()

        assert credential_service.read() == "T3"

    def test_refresh_4xx_is_permanent(self, upstream, fake_upstream):
        fake_upstream.add_token(status=400)

        with pytest.raises(UpstreamPermanent):
            upstream.refresh()
        assert credential_service.read() == "T1"

    def test_refresh_5xx_is_transient(self, upstream, fake_upstream):
        fake_upstream.add_token(status=503)

        with pytest.raises(UpstreamTransient):
            upstream.refresh()


class TestRequest:
    def test_headers_carry_retailer_and_bearer(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/products/1", {"id": 1})

        assert upstream.get("/products/1") == {"id": 1}

        headers = fake_upstream.calls[0]["headers"]
        assert headers["Retailer"] == "teststore"
        assert headers["Authorization"] == "Bearer T1"

    def test_401_refreshes_and_retries_once(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/products/1", {"message": "expired"}, status=401)
        fake_upstream.add("GET", "/products/1", {"id": 1})
        fake_upstream.add_token("T2", 3600)

        assert upstream.get("/products/1") == {"id": 1}

        assert len(fake_upstream.token_calls) == 1
        assert [call["headers"]["Authorization"] for call in fake_upstream.calls] == ["Bearer T1", "Bearer T2"]

    def test_second_401_surfaces_auth_expired(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/products/1", {"message": "expired"}, status=401)
        fake_upstream.add_token("T2", 3600)

        with pytest.raises(UpstreamAuthExpired) as exc_info:
            upstream.get("/products/1")
        assert exc_info.value.status == 401
        assert len(fake_upstream.calls) == 2

    def test_4xx_is_permanent_with_status_and_body(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/products/1", {"message": "bad request"}, status=400)

        with pytest.raises(UpstreamPermanent) as exc_info:
            upstream.get("/products/1")
        assert exc_info.value.status == 400
        assert exc_info.value.body == {"message": "bad request"}

    def test_non_json_body_is_decode_error(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/products/1", text="<html>oops</html>")

        with pytest.raises(UpstreamDecodeError):
            upstream.get("/products/1")

    def test_network_failure_is_transient(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/products/1", error=requests.ConnectionError("refused"))

        with pytest.raises(UpstreamTransient):
            upstream.get("/products/1")

    def test_cancelled_client_refuses_requests(self, upstream, fake_upstream):
        upstream.cancel()

        with pytest.raises(UpstreamCancelled):
            upstream.get("/products/1")
        assert fake_upstream.calls == []


class TestPager:
    def test_two_pages_terminate_on_total(self, upstream, fake_upstream):
        """150 rows over two pages: GETs at cursors 0 and 100 only."""
        fake_upstream.add("GET", "/products", page(_rows(0, 100), total=150))
        fake_upstream.add("GET", "/products", page(_rows(100, 50), total=150))

        rows = upstream.page_all("/products", {"includeInventory": "true"})

        assert [row["id"] for row in rows] == list(range(150))
        calls = fake_upstream.calls_to("GET", "/products")
        assert [call["params"]["currentItem"] for call in calls] == [0, 100]
        assert all(call["params"]["pageSize"] == 100 for call in calls)
        assert all(call["params"]["includeInventory"] == "true" for call in calls)

    def test_empty_first_page(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/products", page([], total=0))

        assert upstream.page_all("/products") == []
        assert len(fake_upstream.calls) == 1

    def test_short_page_without_total_stops(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/customers", {"data": _rows(0, 3)})

        assert len(upstream.page_all("/customers")) == 3
        assert len(fake_upstream.calls) == 1

    def test_transient_page_failure_retried_once(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/products", {"message": "busy"}, status=503)
        fake_upstream.add("GET", "/products", page(_rows(0, 2)))

        rows = upstream.page_all("/products")

        assert len(rows) == 2
        assert upstream.sleeps == [0]

    def test_persistent_failure_reports_pages_fetched(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/products", page(_rows(0, 100), total=300))
        fake_upstream.add("GET", "/products", {"message": "down"}, status=502)

        with pytest.raises(UpstreamTransient) as exc_info:
            upstream.page_all("/products")
        assert exc_info.value.pages_fetched == 1
        # first page, then the failing page and its single retry
        assert len(fake_upstream.calls) == 3

    def test_permanent_failure_not_retried(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/products", {"message": "forbidden"}, status=403)

        with pytest.raises(UpstreamPermanent):
            upstream.page_all("/products")
        assert len(fake_upstream.calls) == 1

    def test_page_delay_between_pages(self, upstream, fake_upstream):
        fake_upstream.add("GET", "/invoices", page(_rows(0, 100), total=150))
        fake_upstream.add("GET", "/invoices", page(_rows(100, 50), total=150))

        upstream.page_all("/invoices", page_delay=1.0)

        assert upstream.sleeps == [1.0]
