import json
import os
import stat
from unittest.mock import MagicMock

import pytest

from spiris import (
    AccessToken,
    ExhaustedError,
    InvalidGrantError,
    PaginatedResponse,
    ResponseMetadata,
    cli,
    issue,
)
from spiris.auth import AuthorizationRequest
from spiris.models import Customer


@pytest.fixture
def token_file(tmp_path):
    return tmp_path / "token.json"


def _run(token_file, *argv):
    return cli.main(["--token-file", str(token_file), *argv])


def _fake_client():
    client = MagicMock()
    client.__enter__.return_value = client
    # let exceptions raised inside `with client:` propagate
    client.__exit__.return_value = False
    return client


def test_login_stores_token_with_private_mode(monkeypatch, token_file, capsys):
    handler = MagicMock()
    handler.authorize_url.return_value = AuthorizationRequest(
        url="https://identity.example.test/authorize?state=s1", state="s1", verifier="v1"
    )
    handler.exchange_code.return_value = issue("at", 3600, refresh_token="rt")
    monkeypatch.setattr(cli, "make_handler", lambda args: handler)
    monkeypatch.setattr(
        "builtins.input", lambda prompt="": "http://localhost:8080/callback?code=c1&state=s1"
    )
    assert _run(token_file, "login") == cli.EXIT_OK
    handler.exchange_code.assert_called_once_with("c1", "v1")
    stored = AccessToken.from_json(token_file.read_text())
    assert stored.refresh_token == "rt"
    assert stat.S_IMODE(os.stat(token_file).st_mode) == 0o600  # noqa: PLR2004
    assert "at" not in capsys.readouterr().out.split()


def test_login_with_wrong_state_needs_reauth(monkeypatch, token_file):
    handler = MagicMock()
    handler.authorize_url.return_value = AuthorizationRequest("https://x", "s1", "v1")
    monkeypatch.setattr(cli, "make_handler", lambda args: handler)
    monkeypatch.setattr("builtins.input", lambda prompt="": "http://cb?code=c&state=forged")
    assert _run(token_file, "login") == cli.EXIT_REAUTH
    handler.exchange_code.assert_not_called()
    assert not token_file.exists()


def test_token_status_hides_secret(token_file, capsys):
    cli.save_token(token_file, issue("secret-at", 600, refresh_token="secret-rt"))
    assert _run(token_file, "token") == cli.EXIT_OK
    out = capsys.readouterr().out
    assert "valid for" in out
    assert "secret" not in out


def test_missing_token_asks_for_login(token_file, capsys):
    assert _run(token_file, "customers", "list") == cli.EXIT_REAUTH
    assert "spiris login" in capsys.readouterr().err


def test_refresh_rejected_maps_to_reauth(monkeypatch, token_file):
    cli.save_token(token_file, issue("at", 600, refresh_token="rt"))
    client = _fake_client()
    client.refresh.side_effect = InvalidGrantError("revoked", "invalid_grant")
    monkeypatch.setattr(cli, "make_client", lambda args, token: client)
    assert _run(token_file, "refresh") == cli.EXIT_REAUTH


def test_list_prints_rows_and_saves_refreshed_token(monkeypatch, token_file, capsys):
    original = issue("at", 600, refresh_token="rt")
    cli.save_token(token_file, original)
    refreshed = issue("at2", 3600, refresh_token="rt2")
    page = PaginatedResponse(
        data=[Customer(id="c1", name="Acme")],
        meta=ResponseMetadata(current_page=1, total_number_of_pages=1),
    )
    client = _fake_client()
    client.customers.return_value.list.return_value = page
    client.token = refreshed
    monkeypatch.setattr(cli, "make_client", lambda args, token: client)
    assert _run(token_file, "customers", "list", "--pagesize", "10") == cli.EXIT_OK
    assert "c1\tAcme" in capsys.readouterr().out
    pagination, query = client.customers.return_value.list.call_args.args
    assert pagination.pagesize == 10  # noqa: PLR2004
    assert query is None
    assert json.loads(token_file.read_text())["access_token"] == "at2"


def test_exhausted_retries_exit_code(monkeypatch, token_file, capsys):
    cli.save_token(token_file, issue("at", 600))
    client = _fake_client()
    client.invoices.return_value.get.side_effect = ExhaustedError("503 forever", attempts=4)
    monkeypatch.setattr(cli, "make_client", lambda args, token: client)
    assert _run(token_file, "invoices", "get", "i1") == cli.EXIT_EXHAUSTED
    assert "gave up" in capsys.readouterr().err


def test_corrupt_token_file(token_file):
    token_file.write_text("{not json")
    assert _run(token_file, "token") == cli.EXIT_FAILURE
