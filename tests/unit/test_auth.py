"""
Unit tests for the credential manager.

Only the network boundaries are mocked: ``Flow.fetch_token`` for the code
exchange and ``google.oauth2.credentials.Credentials.refresh`` for token
refresh. URL building, token parsing and the refresh decision run for real.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import google.auth.exceptions
import pytest
import requests
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2.rfc6749.errors import InvalidGrantError

from gmdash.sdk.auth import (
    DEFAULT_SCOPES,
    Credential,
    CredentialManager,
    GoogleCredentials,
    now_ms,
    resolve_scopes,
)
from gmdash.sdk.exceptions import (
    AuthExchangeError,
    ClientConfigError,
    ProviderError,
    RefreshError,
)

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from conftest import CLIENT_CONFIG


def _fake_refresh(new_token="ya29.refreshed", new_refresh_token=None):
    """Side effect standing in for a successful token endpoint round trip."""
    def refresh(self, request):
        self.token = new_token
        self.expiry = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)
        if new_refresh_token:
            self._refresh_token = new_refresh_token
    return refresh


class TestAuthorizationUrl:

    def test_requests_offline_access_and_forced_consent(self, manager):
        url = manager.build_authorization_url(state="session-1")
        params = parse_qs(urlparse(url).query)

        assert url.startswith("https://accounts.google.com/o/oauth2/auth?")
        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]
        assert params["response_type"] == ["code"]
        assert params["client_id"] == [CLIENT_CONFIG["web"]["client_id"]]
        assert params["redirect_uri"] == ["http://localhost:3000/auth/callback"]
        assert params["state"] == ["session-1"]
        assert set(params["scope"][0].split()) == set(DEFAULT_SCOPES)

    def test_is_deterministic_for_the_same_state(self, manager):
        first = manager.build_authorization_url(state="abc")
        second = manager.build_authorization_url(state="abc")
        assert first == second
        assert "code_challenge" not in first

    def test_is_deterministic_without_state(self, manager):
        first = manager.build_authorization_url()
        second = manager.build_authorization_url()
        assert first == second
        assert "state" not in parse_qs(urlparse(first).query)

    def test_is_deterministic_for_the_same_scopes(self, manager):
        scopes = ["mail-read", "mail-send"]
        assert manager.build_authorization_url(scopes) == manager.build_authorization_url(scopes)

    def test_scope_aliases_are_resolved(self, manager):
        url = manager.build_authorization_url(scopes={"mail-read", "mail-send"}, state="s")
        scopes = parse_qs(urlparse(url).query)["scope"][0].split()
        assert sorted(scopes) == [
            "https://www.googleapis.com/auth/gmail.readonly",
            "https://www.googleapis.com/auth/gmail.send",
        ]

    def test_explicit_redirect_uri_wins(self):
        manager = CredentialManager(CLIENT_CONFIG, redirect_uri="https://dash.example.com/cb")
        params = parse_qs(urlparse(manager.build_authorization_url(state="s")).query)
        assert params["redirect_uri"] == ["https://dash.example.com/cb"]

    def test_rejects_config_without_client_type(self):
        with pytest.raises(ClientConfigError):
            CredentialManager({"other": {}})

    def test_rejects_config_without_redirect(self):
        config = {"installed": {"client_id": "x", "client_secret": "y",
                                "auth_uri": "https://a", "token_uri": "https://t"}}
        with pytest.raises(ClientConfigError):
            CredentialManager(config)


class TestExchangeCode:

    def test_returns_credential_from_token_response(self, manager):
        expires_at = datetime.now().timestamp() + 3599
        token = {
            "access_token": "ya29.new",
            "refresh_token": "1//refresh",
            "token_type": "Bearer",
            "expires_in": 3599,
            "expires_at": expires_at,
            "scope": "https://www.googleapis.com/auth/gmail.modify",
        }
        with patch.object(Flow, "fetch_token", return_value=token) as fetch:
            credential = manager.exchange_code("4/auth-code")

        fetch.assert_called_once_with(code="4/auth-code")
        assert credential.access_token == "ya29.new"
        assert credential.refresh_token == "1//refresh"
        assert credential.token_type == "Bearer"
        assert credential.expiry_ms == int(expires_at * 1000)
        assert credential.scopes == ("https://www.googleapis.com/auth/gmail.modify",)

    def test_expiry_falls_back_to_expires_in(self, manager):
        before = now_ms()
        token = {"access_token": "a", "refresh_token": "r", "expires_in": 60}
        with patch.object(Flow, "fetch_token", return_value=token):
            credential = manager.exchange_code("code")
        assert before + 60000 <= credential.expiry_ms <= now_ms() + 60000

    def test_invalid_code_raises_auth_exchange_error(self, manager):
        with patch.object(Flow, "fetch_token", side_effect=InvalidGrantError("Malformed auth code.")):
            with pytest.raises(AuthExchangeError) as exc:
                manager.exchange_code("bad-code")
        assert exc.value.requires_reauth
        assert exc.value.operation == "exchange code"

    def test_unreachable_endpoint_raises_auth_exchange_error(self, manager):
        with patch.object(Flow, "fetch_token", side_effect=requests.ConnectionError("down")):
            with pytest.raises(AuthExchangeError):
                manager.exchange_code("code")

    def test_missing_code_never_calls_endpoint(self, manager):
        with patch.object(Flow, "fetch_token") as fetch:
            with pytest.raises(AuthExchangeError):
                manager.exchange_code("")
        fetch.assert_not_called()


class TestEnsureValid:

    def test_expired_credential_refreshes_exactly_once(self, manager):
        stale = Credential(access_token="old", refresh_token="1//r", expiry_ms=now_ms() - 1)

        with patch.object(GoogleCredentials, "refresh", autospec=True,
                          side_effect=_fake_refresh()) as refresh:
            fresh = manager.ensure_valid(stale)

        assert refresh.call_count == 1
        assert fresh.access_token == "ya29.refreshed"
        assert fresh.expiry_ms > stale.expiry_ms
        assert fresh.refresh_token == "1//r"
        # The input value is never mutated
        assert stale.access_token == "old"

    def test_valid_credential_is_returned_unchanged(self, manager):
        current = Credential(access_token="a", refresh_token="r", expiry_ms=now_ms() + 3600000)

        with patch.object(GoogleCredentials, "refresh", autospec=True) as refresh:
            result = manager.ensure_valid(current)

        refresh.assert_not_called()
        assert result is current

    def test_missing_expiry_counts_as_expired(self, manager):
        unknown = Credential(access_token="a", refresh_token="r", expiry_ms=None)
        with patch.object(GoogleCredentials, "refresh", autospec=True,
                          side_effect=_fake_refresh()) as refresh:
            manager.ensure_valid(unknown)
        assert refresh.call_count == 1

    def test_expiry_equal_to_now_counts_as_expired(self, manager):
        at_boundary = Credential(access_token="a", refresh_token="r", expiry_ms=5000)
        with patch.object(GoogleCredentials, "refresh", autospec=True,
                          side_effect=_fake_refresh()) as refresh:
            manager.ensure_valid(at_boundary, now=5000)
        assert refresh.call_count == 1

    def test_new_refresh_token_replaces_old_one(self, manager):
        stale = Credential(access_token="old", refresh_token="1//old", expiry_ms=0)
        with patch.object(GoogleCredentials, "refresh", autospec=True,
                          side_effect=_fake_refresh(new_refresh_token="1//new")):
            fresh = manager.ensure_valid(stale)
        assert fresh.refresh_token == "1//new"

    def test_missing_refresh_token_raises_refresh_error(self, manager):
        stale = Credential(access_token="old", refresh_token=None, expiry_ms=0)
        with patch.object(GoogleCredentials, "refresh", autospec=True) as refresh:
            with pytest.raises(RefreshError) as exc:
                manager.ensure_valid(stale)
        refresh.assert_not_called()
        assert exc.value.requires_reauth

    def test_revoked_refresh_token_raises_refresh_error(self, manager):
        stale = Credential(access_token="old", refresh_token="1//revoked", expiry_ms=0)
        revoked = google.auth.exceptions.RefreshError(
            "invalid_grant: Token has been expired or revoked."
        )
        with patch.object(GoogleCredentials, "refresh", autospec=True, side_effect=revoked):
            with pytest.raises(RefreshError) as exc:
                manager.ensure_valid(stale)
        assert exc.value.__cause__ is revoked

    def test_unreachable_token_endpoint_is_not_fatal(self, manager):
        stale = Credential(access_token="old", refresh_token="1//r", expiry_ms=0)
        down = google.auth.exceptions.TransportError("connection refused")
        with patch.object(GoogleCredentials, "refresh", autospec=True, side_effect=down):
            with pytest.raises(ProviderError) as exc:
                manager.ensure_valid(stale)
        assert not exc.value.requires_reauth


class TestCredential:

    def test_session_blob_round_trip(self, credential):
        assert Credential.from_dict(credential.to_dict()) == credential

    def test_from_dict_tolerates_missing_optional_fields(self):
        credential = Credential.from_dict({"access_token": "a"})
        assert credential.refresh_token is None
        assert credential.token_type == "Bearer"
        assert credential.expiry_ms is None
        assert credential.is_expired()

    def test_google_credentials_carry_no_refresh_material(self, credential):
        google_creds = credential.to_google_credentials()
        assert google_creds.token == credential.access_token
        assert google_creds.refresh_token is None

    def test_resolve_scopes_drops_duplicates(self):
        assert resolve_scopes(["mail", "mail-modify"]) == (
            "https://www.googleapis.com/auth/gmail.modify",
        )
