"""
CLI command tests via Flask's CLI runner.
"""

from unittest import mock

from posbridge.models import Product
from tests.conftest import page


def test_token_status_without_token(app, db_session):
    result = app.test_cli_runner().invoke(args=["upstream", "token-status"])

    assert result.exit_code == 0
    assert "WARN No usable token" in result.output


def test_token_status_reports_form(app, stored_token):
    result = app.test_cli_runner().invoke(args=["upstream", "token-status"])

    assert result.exit_code == 0
    assert "Token form: structured" in result.output
    assert "State:      valid" in result.output
    assert "T1" not in result.output


def test_refresh_token_exit_codes(app, fake_upstream, db_session):
    runner = app.test_cli_runner()
    with mock.patch("posbridge.services.upstream_client.requests.Session", return_value=fake_upstream):
        fake_upstream.add_token(status=500)
        failed = runner.invoke(args=["upstream", "refresh-token"])
        fake_upstream.token_responses.clear()
        fake_upstream.add_token("NEW")
        refreshed = runner.invoke(args=["upstream", "refresh-token"])

    assert failed.exit_code == 1
    assert refreshed.exit_code == 0
    assert "PASS Token refreshed" in refreshed.output


def test_sync_products_command(app, fake_upstream, stored_token):
    fake_upstream.add("GET", "/products", page([{"id": 1, "name": "Tea"}]))

    with mock.patch("posbridge.services.upstream_client.requests.Session", return_value=fake_upstream):
        result = app.test_cli_runner().invoke(args=["sync", "products"])

    assert result.exit_code == 0
    assert result.output.startswith("PASS products")
    assert Product.query.count() == 1


def test_sync_invoices_month_rejects_bad_month(app, stored_token):
    result = app.test_cli_runner().invoke(args=["sync", "invoices-month", "--year", "2024", "--month", "13"])

    assert result.exit_code == 2


def test_sync_purchase_orders_needs_both_dates(app, stored_token):
    result = app.test_cli_runner().invoke(args=["sync", "purchase-orders", "--from", "01/01/2024"])

    assert result.exit_code == 2
