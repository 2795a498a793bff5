"""MSAL-backed bearer token provider for Microsoft Graph."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import msal

from .config import Settings
from .errors import CredentialError

logger = logging.getLogger(__name__)


class GraphCredentialProvider:
    """Acquire Graph access tokens for the configured account."""

    GRAPH_SCOPE = ["https://graph.microsoft.com/.default"]

    def __init__(self, settings: Settings, app=None) -> None:
        self.settings = settings
        self.scopes = settings.graph_scopes
        self.auth_mode = settings.graph_auth_mode
        self._token_cache = None
        # Token acquisition and cache persistence run on worker threads.
        self._lock = threading.Lock()

        if app is not None:
            self.app = app
        elif self.auth_mode == "client_credentials":
            self.app = msal.ConfidentialClientApplication(
                client_id=settings.graph_client_id,
                client_credential=settings.graph_client_secret,
                authority=settings.authority_url,
            )
        else:
            token_cache = msal.SerializableTokenCache()
            cache_path = settings.graph_token_cache
            if cache_path.exists():
                token_cache.deserialize(cache_path.read_text())
            self._token_cache = token_cache
            self.app = msal.PublicClientApplication(
                client_id=settings.graph_client_id,
                authority=settings.authority_url,
                token_cache=token_cache,
            )

    def acquire_token(self) -> str:
        """Return a bearer token, from the MSAL cache when possible."""
        with self._lock:
            if self.auth_mode == "client_credentials":
                return self._acquire_token_client_credentials(force_refresh=False)
            return self._acquire_token_device_flow(force_refresh=False)

    def refresh(self) -> str:
        """Bypass cached access tokens after Graph answered 401."""
        logger.info("Refreshing Graph token for %s", self.settings.graph_account or "default account")
        with self._lock:
            if self.auth_mode == "client_credentials":
                return self._acquire_token_client_credentials(force_refresh=True)
            return self._acquire_token_device_flow(force_refresh=True)

    def _acquire_token_client_credentials(self, force_refresh: bool) -> str:
        result = None
        if not force_refresh:
            result = self.app.acquire_token_silent(self.GRAPH_SCOPE, account=None)
        if not result:
            result = self.app.acquire_token_for_client(scopes=self.GRAPH_SCOPE)
        return self._access_token(result)

    def _acquire_token_device_flow(self, force_refresh: bool) -> str:
        account = self._select_account()
        result = None
        if account:
            result = self.app.acquire_token_silent(
                self.scopes, account=account, force_refresh=force_refresh
            )
        if not result:
            flow = self.app.initiate_device_flow(scopes=self.scopes)
            if "user_code" not in flow:
                raise CredentialError(f"Unable to start device code flow: {flow}")
            logger.info(flow.get("message"))
            result = self.app.acquire_token_by_device_flow(flow)
        token = self._access_token(result)
        self._persist_token_cache()
        return token

    def _select_account(self):
        if self.settings.graph_account:
            accounts = self.app.get_accounts(username=self.settings.graph_account)
        else:
            accounts = self.app.get_accounts()
        return accounts[0] if accounts else None

    @staticmethod
    def _access_token(result: dict | None) -> str:
        if not result or "access_token" not in result:
            description = (result or {}).get("error_description")
            raise CredentialError(f"Unable to obtain Graph token: {description}")
        return result["access_token"]

    def _persist_token_cache(self) -> None:
        if not self._token_cache or not self._token_cache.has_state_changed:
            return
        cache_path: Path = self.settings.graph_token_cache
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        cache_path.write_text(self._token_cache.serialize())
