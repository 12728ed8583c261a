"""Tests for authentication: password computation, login, renewal and authorization."""

import hashlib
import hmac
from datetime import timedelta
from unittest.mock import patch

import httpx
import pytest

from conftest import (
    APP_ID,
    CHALLENGE,
    ENDPOINT,
    PRIVATE_TOKEN,
    SESSION_TOKEN,
    FakeFreebox,
    fail,
    make_client,
    ok,
)
from mcp_freebox.auth import (
    AUTH_HEADER,
    AuthorizationRequest,
    Permissions,
    Session,
    compute_password,
)
from mcp_freebox.exceptions import (
    AppIDNotSetError,
    AuthRequiredError,
    AuthorizationError,
    BusinessError,
    DecodingError,
    NetworkError,
    PrivateTokenNotSetError,
    StatusError,
)
from mcp_freebox.freebox_client import FreeboxClient


def expected_password(token: str = PRIVATE_TOKEN, challenge: str = CHALLENGE) -> str:
    return hmac.new(token.encode(), challenge.encode(), hashlib.sha1).hexdigest()


class TestComputePassword:
    """Tests for compute_password."""

    def test_matches_hmac_sha1(self) -> None:
        """Test the password is the hex HMAC-SHA1 of the challenge keyed by the token."""
        assert compute_password(PRIVATE_TOKEN, CHALLENGE) == expected_password()

    def test_is_hex(self) -> None:
        """Test the password is 40 lowercase hex characters."""
        password = compute_password("key", "challenge")
        assert len(password) == 40
        assert password == password.lower()
        int(password, 16)


class TestPermissions:
    """Tests for Permissions."""

    def test_unspecified_flags_default_false(self) -> None:
        """Test only the flags present in the response are granted."""
        permissions = Permissions.from_dict({"settings": True, "vm": True})
        assert permissions.settings is True
        assert permissions.vm is True
        assert permissions.downloader is False
        assert permissions.granted() == ["settings", "vm"]

    def test_unknown_flags_ignored(self) -> None:
        """Test flags added by newer firmwares do not break decoding."""
        permissions = Permissions.from_dict({"explorer": True, "new_feature": True})
        assert permissions == Permissions(explorer=True)

    def test_not_an_object(self) -> None:
        """Test a list of flags is a decoding error."""
        with pytest.raises(DecodingError):
            Permissions.from_dict(["settings"])

    def test_to_dict(self) -> None:
        """Test every flag is listed."""
        result = Permissions(tv=True).to_dict()
        assert result["tv"] is True
        assert len(result) == 14


class TestSession:
    """Tests for Session."""

    def test_open_is_not_expired(self) -> None:
        """Test a fresh session is within its validity window."""
        assert Session.open("token").expired is False

    def test_expired(self) -> None:
        """Test a session past its validity window reports expiry."""
        assert Session.open("token", validity=timedelta(seconds=-1)).expired is True


class TestLogin:
    """Tests for the login handshake."""

    def test_login_returns_permissions(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test login performs both steps and returns the granted permissions."""
        fake.expect_login()
        permissions = client.login()

        assert permissions == Permissions(settings=True, vm=True)
        assert client.is_authenticated is True
        assert client.session is not None
        assert client.session.token == SESSION_TOKEN
        assert fake.paths() == ["GET login", "POST login/session"]

    def test_login_sends_app_id_and_password(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test the session exchange carries the app id and the HMAC password."""
        fake.expect_login()
        client.login()

        body = fake.json_body(fake.last("POST", "login/session"))
        assert body == {"app_id": APP_ID, "password": expected_password()}

    def test_handshake_is_unauthenticated(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test no session header is sent during the handshake."""
        fake.expect_login()
        client.login()
        assert all(AUTH_HEADER not in r.headers for r in fake.requests)

    def test_missing_app_id(self, fake: FakeFreebox) -> None:
        """Test a missing app id fails before any network call."""
        client = make_client(fake, app_id=None)
        with pytest.raises(AppIDNotSetError):
            client.login()
        assert fake.requests == []

    def test_missing_private_token(self, fake: FakeFreebox) -> None:
        """Test a missing private token fails before any network call."""
        client = make_client(fake, private_token="")
        with pytest.raises(PrivateTokenNotSetError):
            client.list_port_forwarding_rules()
        assert fake.requests == []

    def test_credentials_can_be_set_later(self, fake: FakeFreebox) -> None:
        """Test app id and private token are read at login time."""
        client = make_client(fake, app_id=None, private_token=None)
        client.app_id = APP_ID
        client.private_token = PRIVATE_TOKEN
        fake.expect_login()
        client.login()
        assert client.is_authenticated is True

    def test_connection_lost_mid_handshake(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test a transport failure between the two steps is a network error."""
        fake.expect_login()
        cause = httpx.ReadError("connection reset by peer")
        fake.route("POST", "login/session", cause)

        with pytest.raises(NetworkError) as excinfo:
            client.login()
        assert excinfo.value.__cause__ is cause
        assert client.is_authenticated is False

    def test_rejected_password(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test a rejected session exchange surfaces the business error without retrying."""
        fake.expect_login()
        fake.route("POST", "login/session", fail("invalid_token", "The app token is invalid"))

        with pytest.raises(AuthRequiredError, match="invalid_token"):
            client.login()
        assert fake.paths() == ["GET login", "POST login/session"]

    @pytest.mark.parametrize("result", [[], {"challenge": 12345}, {"logged_in": False}])
    def test_challenge_wrong_shape(self, fake: FakeFreebox, client: FreeboxClient, result: object) -> None:
        """Test an unexpected login challenge payload is a decoding error."""
        fake.route("GET", "login", ok(result))
        with pytest.raises(DecodingError):
            client.login()
        assert client.is_authenticated is False
        assert fake.paths() == ["GET login"]

    @pytest.mark.parametrize("result", [
        [],
        {"session_token": SESSION_TOKEN, "permissions": ["settings"]},
        {"session_token": 42, "permissions": {}},
    ])
    def test_session_result_wrong_shape(self, fake: FakeFreebox, client: FreeboxClient, result: object) -> None:
        """Test an unexpected session exchange payload is a decoding error."""
        fake.expect_login()
        fake.route("POST", "login/session", ok(result))
        with pytest.raises(DecodingError):
            client.login()
        assert client.is_authenticated is False

    def test_challenge_server_error(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test an unstructured error on the challenge aborts the handshake."""
        fake.route("GET", "login", httpx.Response(502, text="test body"))
        with pytest.raises(StatusError, match="failed with status '502': server returned 'test body'"):
            client.login()


class TestSessionRenewal:
    """Tests for the automatic re-login on rejected sessions."""

    def test_retry_after_auth_required(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test a rejected session triggers one re-login and one retry."""
        fake.expect_login("first-token", "second-token")
        fake.route("GET", "fw/redir/", fail("auth_required", "Invalid session token"), ok([]))

        assert client.list_port_forwarding_rules() == []
        assert fake.paths() == [
            "GET login", "POST login/session",
            "GET fw/redir/",
            "GET login", "POST login/session",
            "GET fw/redir/",
        ]
        calls = [r for r in fake.requests if r.url.path.endswith("fw/redir/")]
        assert calls[0].headers[AUTH_HEADER] == "first-token"
        assert calls[1].headers[AUTH_HEADER] == "second-token"
        assert client.session.token == "second-token"

    def test_retry_happens_once(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test a call rejected twice surfaces the error after a single renewal."""
        fake.expect_login("first-token", "second-token")
        fake.route("GET", "fw/redir/", fail("auth_required", "Invalid session token"))

        with pytest.raises(AuthRequiredError):
            client.list_port_forwarding_rules()
        assert fake.paths().count("POST login/session") == 2
        assert fake.paths().count("GET fw/redir/") == 2

    def test_renewal_failure_surfaces_original_error(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test the original error is raised when renewal fails."""
        fake.expect_login()
        fake.route("POST", "login/session", ok({"session_token": "t", "permissions": {}}),
                   fail("denied_from_external_ip", "Denied"))
        fake.route("GET", "vm/", fail("invalid_session", "Session expired"))

        with pytest.raises(AuthRequiredError) as excinfo:
            client.list_virtual_machines()
        assert excinfo.value.error_code == "invalid_session"
        assert isinstance(excinfo.value.__cause__, BusinessError)
        assert excinfo.value.__cause__.error_code == "denied_from_external_ip"

    def test_renewal_configuration_error_surfaces_directly(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test missing configuration during renewal is raised as is."""
        fake.expect_login()
        fake.route("GET", "vm/", fail("auth_required", "Invalid session token"))
        client.login()
        client.private_token = None

        with pytest.raises(PrivateTokenNotSetError):
            client.list_virtual_machines()

    def test_renewal_configuration_error_drops_session(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test the rejected session is not sent again once configuration is missing."""
        fake.expect_login()
        fake.route("GET", "vm/", fail("auth_required", "Invalid session token"))
        client.login()
        client.private_token = None

        with pytest.raises(PrivateTokenNotSetError):
            client.list_virtual_machines()
        assert client.is_authenticated is False

        sent = len(fake.requests)
        with pytest.raises(PrivateTokenNotSetError):
            client.list_virtual_machines()
        assert len(fake.requests) == sent

    def test_session_is_reused(self, fake: FakeFreebox, logged_in: FreeboxClient) -> None:
        """Test consecutive calls share one login."""
        fake.route("GET", "vm/", ok([]))
        logged_in.list_virtual_machines()
        logged_in.list_virtual_machines()
        assert fake.paths().count("GET login") == 1

    def test_business_errors_are_not_retried(self, fake: FakeFreebox, logged_in: FreeboxClient) -> None:
        """Test only auth class errors trigger a renewal."""
        fake.route("GET", "fw/redir/12", fail("noent", "Invalid id", status=404))
        with pytest.raises(BusinessError):
            logged_in.get_port_forwarding_rule(12)
        assert fake.paths().count("GET login") == 1


class TestLogout:
    """Tests for logout."""

    def test_logout_clears_session(self, fake: FakeFreebox, logged_in: FreeboxClient) -> None:
        """Test logout invalidates the session on both sides."""
        fake.route("POST", "login/logout", ok())
        logged_in.login()
        logged_in.logout()

        assert logged_in.is_authenticated is False
        assert fake.last("POST", "login/logout").headers[AUTH_HEADER] == SESSION_TOKEN

    def test_logout_failure_is_not_fatal(self, fake: FakeFreebox, logged_in: FreeboxClient) -> None:
        """Test a failing logout call still clears the local session."""
        fake.route("POST", "login/logout", httpx.ConnectError("unreachable"))
        logged_in.login()
        logged_in.logout()
        assert logged_in.is_authenticated is False

    def test_logout_without_session(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test logout without a session does nothing."""
        client.logout()
        assert fake.requests == []


class TestAuthorize:
    """Tests for the application authorization flow."""

    REQUEST = AuthorizationRequest(
        app_id=APP_ID,
        app_name="MCP Freebox",
        app_version="0.1.0",
        device_name="laptop",
    )

    def _grant(self, fake: FakeFreebox) -> None:
        fake.route("POST", "login/authorize", ok({"app_token": "new-private-token", "track_id": 42}))

    def test_granted(self, fake: FakeFreebox) -> None:
        """Test the private token is returned once the user accepts."""
        client = make_client(fake, app_id=None, private_token=None)
        self._grant(fake)
        fake.route("GET", "login/authorize/42",
                   ok({"status": "pending", "challenge": CHALLENGE}),
                   ok({"status": "granted", "challenge": CHALLENGE}))

        with patch("mcp_freebox.freebox_client.time.sleep") as sleep:
            token = client.authorize(self.REQUEST, poll_interval=0.5)

        assert token == "new-private-token"
        sleep.assert_called_once_with(0.5)
        assert fake.json_body(fake.last("POST", "login/authorize"))["app_name"] == "MCP Freebox"

    def test_denied(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test a denied request raises AuthorizationError."""
        self._grant(fake)
        fake.route("GET", "login/authorize/42", ok({"status": "denied"}))

        with pytest.raises(AuthorizationError) as excinfo:
            client.authorize(self.REQUEST)
        assert excinfo.value.status == "denied"

    def test_attempts_exhausted(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test polling stops after max_attempts."""
        self._grant(fake)
        fake.route("GET", "login/authorize/42", ok({"status": "pending"}))

        with patch("mcp_freebox.freebox_client.time.sleep"):
            with pytest.raises(AuthorizationError, match="pending"):
                client.authorize(self.REQUEST, max_attempts=3)
        assert fake.paths().count("GET login/authorize/42") == 3


class TestApiVersion:
    """Tests for the unauthenticated version probe."""

    def test_api_version(self, fake: FakeFreebox) -> None:
        """Test the probe needs no credentials."""
        client = make_client(fake, app_id=None, private_token=None)
        fake.route_raw("GET", "/api_version", httpx.Response(200, json={
            "uid": "23b86ec8091013d668829fe12791fdab",
            "device_name": "Freebox Server",
            "api_version": "10.0",
            "api_base_url": "/api/",
            "device_type": "FreeboxServer7,1",
            "https_available": True,
            "box_model": "fbxgw7-r1/full",
        }))

        version = client.api_version()
        assert version.api_version == "10.0"
        assert version.https_available is True
        assert version.box_model == "fbxgw7-r1/full"
        assert fake.requests[0].url == httpx.URL(f"{ENDPOINT}/api_version")

    def test_api_version_status_error(self, fake: FakeFreebox, client: FreeboxClient) -> None:
        """Test a failed probe is a status error."""
        fake.route_raw("GET", "/api_version", httpx.Response(503, text="maintenance"))
        with pytest.raises(StatusError):
            client.api_version()
