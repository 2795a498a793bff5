import threading
import time
from unittest.mock import MagicMock

import pytest

from src.auth import GraphCredentialProvider
from src.errors import CredentialError


def test_device_code_uses_cached_account(make_settings):
    app = MagicMock()
    app.get_accounts.return_value = [{"username": "shop@example.com"}]
    app.acquire_token_silent.return_value = {"access_token": "cached"}
    provider = GraphCredentialProvider(make_settings(), app=app)

    assert provider.acquire_token() == "cached"
    app.acquire_token_silent.assert_called_once_with(
        ["Mail.Read"], account={"username": "shop@example.com"}, force_refresh=False
    )
    app.initiate_device_flow.assert_not_called()


def test_account_handle_selects_account(make_settings):
    app = MagicMock()
    app.get_accounts.return_value = [{"username": "office@example.com"}]
    app.acquire_token_silent.return_value = {"access_token": "t"}
    provider = GraphCredentialProvider(make_settings(GRAPH_ACCOUNT="office@example.com"), app=app)

    provider.acquire_token()

    app.get_accounts.assert_called_once_with(username="office@example.com")


def test_refresh_forces_new_token(make_settings):
    app = MagicMock()
    app.get_accounts.return_value = [{"username": "shop@example.com"}]
    app.acquire_token_silent.return_value = {"access_token": "fresh"}
    provider = GraphCredentialProvider(make_settings(), app=app)

    assert provider.refresh() == "fresh"
    assert app.acquire_token_silent.call_args.kwargs["force_refresh"] is True


def test_client_credentials_failure_raises(make_settings):
    settings = make_settings(
        GRAPH_AUTH_MODE="client_credentials",
        GRAPH_CLIENT_SECRET="secret",
        GRAPH_MAILBOX="orders@example.com",
        GRAPH_TENANT_ID="tenant",
    )
    app = MagicMock()
    app.acquire_token_silent.return_value = None
    app.acquire_token_for_client.return_value = {"error_description": "bad secret"}
    provider = GraphCredentialProvider(settings, app=app)

    with pytest.raises(CredentialError, match="bad secret"):
        provider.acquire_token()


def test_token_requests_from_threads_do_not_overlap(make_settings):
    active = []
    overlaps = []

    def silent(*args, **kwargs):
        active.append(1)
        if len(active) > 1:
            overlaps.append(len(active))
        time.sleep(0.01)
        active.pop()
        return {"access_token": "t"}

    app = MagicMock()
    app.get_accounts.return_value = [{"username": "shop@example.com"}]
    app.acquire_token_silent.side_effect = silent
    provider = GraphCredentialProvider(make_settings(), app=app)

    workers = [threading.Thread(target=provider.acquire_token) for _ in range(3)]
    workers.append(threading.Thread(target=provider.refresh))
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert app.acquire_token_silent.call_count == 4
    assert overlaps == []
