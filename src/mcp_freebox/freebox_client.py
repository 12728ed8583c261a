"""Freebox OS API client.

The client authenticates with an application id and the private token the
box granted to that application, keeps the resulting session token, and
renews it once when the Freebox rejects it.

To get a private token for a new application:
1. Call ``FreeboxClient.authorize`` with an AuthorizationRequest
2. Press the right arrow on the Freebox front panel to accept
3. Keep the returned token, it does not expire
4. Use it as FREEBOX_TOKEN in your .env file
"""

from __future__ import annotations

import itertools
import logging
import re
import threading
import time
from email.message import Message
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

import httpx
from websockets.exceptions import WebSocketException
from websockets.sync.client import connect

from .auth import (
    AUTH_HEADER,
    AUTHORIZATION_DENIED,
    AUTHORIZATION_GRANTED,
    AUTHORIZATION_PENDING,
    AUTHORIZATION_TIMEOUT,
    AUTHORIZATION_UNKNOWN,
    AuthorizationGrant,
    AuthorizationRequest,
    AuthorizationState,
    Challenge,
    Permissions,
    Session,
    SessionResult,
    compute_password,
)
from .envelope import (
    Envelope,
    decode_list,
    decode_object,
    decode_path,
    decode_value,
    encode_path,
    parse_envelope,
)
from .exceptions import (
    AppIDNotSetError,
    AuthRequiredError,
    AuthorizationError,
    ConfigurationError,
    DecodingError,
    FreeboxError,
    NetworkError,
    PrivateTokenNotSetError,
    RequestTimeoutError,
    StatusError,
    classify_envelope,
)
from .streaming import EventStream, File, FileUpload, WebSocketConnection, await_reply, send_action
from .types import (
    APIVersion,
    DHCPStaticLeaseInfo,
    DHCPStaticLeasePayload,
    DownloadRequest,
    DownloadTask,
    DownloadTaskUpdate,
    EventDescription,
    ExtractFilePayload,
    FILE_MODE_OVERWRITE,
    FileInfo,
    FileSystemTask,
    FileUploadStart,
    HashPayload,
    LanInfo,
    LanInterfaceHost,
    PortForwardingRule,
    PortForwardingRulePayload,
    UploadTask,
    VirtualDiskCreatePayload,
    VirtualDiskInfo,
    VirtualDiskResizePayload,
    VirtualDiskTask,
    VirtualMachine,
    VirtualMachineDistribution,
    VirtualMachinePayload,
    VirtualMachinesInfo,
)

# Configure module logger
logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_VERSION = "v8"

_SCHEME_RE = re.compile(r"^https?://")


def _task_id(envelope: Envelope) -> int:
    if not isinstance(envelope.result, dict):
        raise DecodingError(f"expected a JSON object holding a task id, got {type(envelope.result).__name__}")
    return decode_value(envelope.result.get("id"), int)


class FreeboxClient:
    """Client for the Freebox OS HTTP API.

    One instance talks to one Freebox and owns one session. Authenticated
    methods log in on first use and transparently log in again, once, when
    the session is rejected.

    Attributes:
        endpoint: Freebox base URL, e.g. ``http://mafreebox.freebox.fr``.
        version: API version, e.g. ``v8``.
        app_id: Application id registered on the Freebox.
        private_token: Private token granted to ``app_id``.
        timeout: Deadline in seconds applied to every request.

    Example:
        >>> client = FreeboxClient('mafreebox.freebox.fr', 'v8',
        ...                        app_id='fr.example.app', private_token='...')
        >>> permissions = client.login()
        >>> if permissions.settings:
        ...     rules = client.list_port_forwarding_rules()
        ...     print(f"Found {len(rules)} rules")
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        endpoint: str,
        version: str = DEFAULT_VERSION,
        *,
        app_id: Optional[str] = None,
        private_token: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT,
        ws_connect: Optional[Callable[..., WebSocketConnection]] = None,
    ) -> None:
        """Initialize the Freebox client.

        Args:
            endpoint: Freebox host or URL. ``http://`` is assumed without scheme.
            version: API version string.
            app_id: Application id.
            private_token: Application private token.
            http_client: HTTP transport to use instead of a fresh httpx.Client.
            timeout: Request timeout in seconds.
            ws_connect: Websocket connection factory, defaults to
                ``websockets.sync.client.connect``.
        """
        if not _SCHEME_RE.match(endpoint):
            endpoint = f"http://{endpoint}"
        self.endpoint = endpoint.rstrip("/")
        self.version = version
        self.base_url = f"{self.endpoint}/api/{version}"
        self.app_id = app_id
        self.private_token = private_token
        self.timeout = timeout
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client()
        self._ws_connect = ws_connect or connect
        self._session: Optional[Session] = None
        self._session_lock = threading.RLock()
        self._upload_ids = itertools.count(1)

    def __enter__(self) -> FreeboxClient:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit - logs out and releases the transport."""
        self.close()

    def close(self) -> None:
        """Log out and close the HTTP transport if this client created it."""
        self.logout()
        if self._owns_http_client:
            self._http.close()

    @property
    def is_authenticated(self) -> bool:
        """Check if a session is cached."""
        return self._session is not None

    @property
    def session(self) -> Optional[Session]:
        """Get the cached session, if any."""
        return self._session

    # =========================================================================
    # Dispatcher
    # =========================================================================

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def _require_credentials(self) -> Tuple[str, str]:
        if not self.app_id:
            raise AppIDNotSetError()
        if not self.private_token:
            raise PrivateTokenNotSetError()
        return self.app_id, self.private_token

    def _send(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        json_payload: Any = None,
        form: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        stream: bool = False,
    ) -> httpx.Response:
        """Perform a request on the transport.

        Raises:
            RequestTimeoutError: If the request exceeds its deadline.
            NetworkError: If the transport fails.
        """
        request_timeout = timeout if timeout is not None else self.timeout
        try:
            request = self._http.build_request(
                method,
                url,
                headers=headers,
                json=json_payload,
                data=form,
                timeout=request_timeout,
            )
            return self._http.send(request, stream=stream)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"{method} {url} timed out after {request_timeout} seconds"
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(f"failed to perform {method} {url}: {e}") from e

    def _decode_response(self, response: httpx.Response) -> Envelope:
        """Turn a response into an envelope or the matching error.

        The Freebox sends structured error bodies along with non-2xx statuses,
        so the envelope is always looked at first.
        """
        try:
            envelope = parse_envelope(response.content)
        except DecodingError as e:
            if not response.is_success:
                raise StatusError(response.status_code, response.text) from e
            raise

        if not envelope.success:
            if not response.is_success and not envelope.has_error_details:
                raise StatusError(response.status_code, response.text)
            raise classify_envelope(envelope, response.status_code)
        if not response.is_success:
            raise StatusError(response.status_code, response.text)
        return envelope

    def _perform(
        self,
        method: str,
        path: str,
        token: Optional[str],
        *,
        json_payload: Any = None,
        form: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Envelope:
        headers = {"Accept": "application/json"}
        if token:
            headers[AUTH_HEADER] = token
        logger.debug("%s %s", method, path)
        response = self._send(
            method,
            self._url(path),
            headers=headers,
            json_payload=json_payload,
            form=form,
            timeout=timeout,
        )
        return self._decode_response(response)

    def _ensure_session(self) -> str:
        session = self._session
        if session is not None:
            return session.token
        with self._session_lock:
            if self._session is not None:
                return self._session.token
            session, _ = self._handshake()
            return session.token

    def _renew(self, stale_token: str) -> str:
        with self._session_lock:
            current = self._session
            if current is not None and current.token != stale_token:
                logger.debug("Session already renewed by another caller")
                return current.token
            session, _ = self._handshake()
            return session.token

    def _with_session(self, operation: Callable[[str], T]) -> T:
        """Run an operation with a session token, renewing it once if rejected.

        Raises:
            ConfigurationError: If app id or private token is missing.
            FreeboxError: The operation's error when renewal fails.
        """
        token = self._ensure_session()
        try:
            return operation(token)
        except AuthRequiredError as err:
            logger.info("Session rejected with '%s', logging in again", err.error_code)
            try:
                token = self._renew(token)
            except ConfigurationError:
                raise
            except FreeboxError as renewal_err:
                logger.warning("Session renewal failed: %s", renewal_err)
                raise err from renewal_err
            return operation(token)

    def _call(
        self,
        method: str,
        path: str,
        *,
        authenticated: bool = True,
        json_payload: Any = None,
        form: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Envelope:
        """Issue an API call and return its successful envelope.

        Args:
            method: HTTP method.
            path: Path relative to ``/api/<version>/``.
            authenticated: Attach (and obtain if needed) the session token.
            json_payload: Body sent as JSON.
            form: Body sent form encoded.
            timeout: Deadline override in seconds.

        Returns:
            The envelope of a successful call.
        """
        if not authenticated:
            return self._perform(method, path, None, json_payload=json_payload, form=form, timeout=timeout)
        return self._with_session(
            lambda token: self._perform(
                method, path, token, json_payload=json_payload, form=form, timeout=timeout
            )
        )

    # =========================================================================
    # Authentication
    # =========================================================================

    def _handshake(self) -> Tuple[Session, Permissions]:
        with self._session_lock:
            try:
                app_id, private_token = self._require_credentials()
                envelope = self._perform("GET", "login", None)
                challenge = decode_object(envelope.result, Challenge)
                password = compute_password(private_token, challenge.challenge)
                envelope = self._perform(
                    "POST",
                    "login/session",
                    None,
                    json_payload={"app_id": app_id, "password": password},
                )
                result = decode_object(envelope.result, SessionResult)
            except FreeboxError:
                self._session = None
                raise
            session = Session.open(result.session_token)
            self._session = session
        logger.info("Logged in to %s as %s", self.endpoint, app_id)
        return session, result.permissions

    def login(self) -> Permissions:
        """Open a session with the challenge/response handshake.

        Returns:
            Permissions granted to the session.

        Raises:
            AppIDNotSetError: If no app id is configured.
            PrivateTokenNotSetError: If no private token is configured.
            FreeboxError: If either step of the handshake fails.
        """
        _, permissions = self._handshake()
        return permissions

    def logout(self) -> None:
        """Close the session. Server side failures are logged and ignored."""
        with self._session_lock:
            session, self._session = self._session, None
        if session is None:
            return
        try:
            self._perform("POST", "login/logout", session.token)
            logger.debug("Logged out from %s", self.endpoint)
        except FreeboxError as e:
            logger.debug("Error during logout: %s", e)

    def authorize(
        self,
        request: AuthorizationRequest,
        *,
        poll_interval: float = 1.0,
        max_attempts: int = 120,
    ) -> str:
        """Register an application and wait for the user to accept it.

        Args:
            request: Application description shown on the Freebox.
            poll_interval: Delay between two status checks, in seconds.
            max_attempts: Number of status checks before giving up.

        Returns:
            The private token granted to the application.

        Raises:
            AuthorizationError: If the request is denied, times out or is unknown.
        """
        envelope = self._call("POST", "login/authorize", authenticated=False, json_payload=request.to_payload())
        grant = decode_object(envelope.result, AuthorizationGrant)
        logger.info("Authorization requested for %s, accept it on the Freebox", request.app_id)

        status = AUTHORIZATION_PENDING
        for attempt in range(max_attempts):
            envelope = self._call("GET", f"login/authorize/{grant.track_id}", authenticated=False)
            status = decode_object(envelope.result, AuthorizationState).status
            if status == AUTHORIZATION_GRANTED:
                logger.info("Authorization granted for %s", request.app_id)
                return grant.app_token
            if status in (AUTHORIZATION_DENIED, AUTHORIZATION_TIMEOUT, AUTHORIZATION_UNKNOWN):
                break
            logger.debug("Authorization %s (attempt %d/%d)", status, attempt + 1, max_attempts)
            time.sleep(poll_interval)
        raise AuthorizationError(status)

    def api_version(self) -> APIVersion:
        """Get the box description. Does not need a session.

        Raises:
            StatusError: On a non-2xx response.
            DecodingError: If the body is not a JSON object.
        """
        response = self._send("GET", f"{self.endpoint}/api_version", headers={"Accept": "application/json"})
        if not response.is_success:
            raise StatusError(response.status_code, response.text)
        try:
            data = response.json()
        except ValueError as e:
            raise DecodingError(f"failed to unmarshal response body '{response.text}': {e}") from e
        return decode_object(data, APIVersion)

    def get_diagnostics(self) -> Dict[str, Any]:
        """Get diagnostic information about the client configuration.

        Returns:
            Dictionary with diagnostic details, secrets excluded.
        """
        session = self._session
        return {
            "endpoint": self.endpoint,
            "version": self.version,
            "base_url": self.base_url,
            "app_id": self.app_id,
            "app_id_set": bool(self.app_id),
            "private_token_set": bool(self.private_token),
            "authenticated": session is not None,
            "session_expires_at": session.expires_at.isoformat() if session else None,
            "session_expired": session.expired if session else None,
        }

    # =========================================================================
    # Port forwarding
    # =========================================================================

    def list_port_forwarding_rules(self) -> List[PortForwardingRule]:
        """List port forwarding rules."""
        return decode_list(self._call("GET", "fw/redir/").result, PortForwardingRule)

    def get_port_forwarding_rule(self, identifier: int) -> PortForwardingRule:
        """Get a port forwarding rule.

        Raises:
            NotFoundError: If the rule does not exist.
        """
        return decode_object(self._call("GET", f"fw/redir/{identifier}").result, PortForwardingRule)

    def create_port_forwarding_rule(self, payload: PortForwardingRulePayload) -> PortForwardingRule:
        """Create a port forwarding rule."""
        envelope = self._call("POST", "fw/redir/", json_payload=payload.to_payload())
        return decode_object(envelope.result, PortForwardingRule)

    def update_port_forwarding_rule(
        self,
        identifier: int,
        payload: PortForwardingRulePayload,
    ) -> PortForwardingRule:
        """Update the fields set in ``payload`` on a port forwarding rule."""
        envelope = self._call("PUT", f"fw/redir/{identifier}", json_payload=payload.to_payload())
        return decode_object(envelope.result, PortForwardingRule)

    def delete_port_forwarding_rule(self, identifier: int) -> None:
        """Delete a port forwarding rule.

        Raises:
            NotFoundError: If the rule does not exist.
        """
        self._call("DELETE", f"fw/redir/{identifier}")

    # =========================================================================
    # DHCP
    # =========================================================================

    def list_dhcp_static_leases(self) -> List[DHCPStaticLeaseInfo]:
        """List DHCP static leases."""
        return decode_list(self._call("GET", "dhcp/static_lease/").result, DHCPStaticLeaseInfo)

    def get_dhcp_static_lease(self, identifier: str) -> DHCPStaticLeaseInfo:
        """Get a DHCP static lease by id (its MAC address)."""
        envelope = self._call("GET", f"dhcp/static_lease/{identifier}")
        return decode_object(envelope.result, DHCPStaticLeaseInfo)

    def create_dhcp_static_lease(self, payload: DHCPStaticLeasePayload) -> DHCPStaticLeaseInfo:
        """Create a DHCP static lease."""
        envelope = self._call("POST", "dhcp/static_lease/", json_payload=payload.to_payload())
        return decode_object(envelope.result, DHCPStaticLeaseInfo)

    def update_dhcp_static_lease(
        self,
        identifier: str,
        payload: DHCPStaticLeasePayload,
    ) -> DHCPStaticLeaseInfo:
        """Update a DHCP static lease."""
        envelope = self._call("PUT", f"dhcp/static_lease/{identifier}", json_payload=payload.to_payload())
        return decode_object(envelope.result, DHCPStaticLeaseInfo)

    def delete_dhcp_static_lease(self, identifier: str) -> None:
        """Delete a DHCP static lease."""
        self._call("DELETE", f"dhcp/static_lease/{identifier}")

    # =========================================================================
    # LAN browser
    # =========================================================================

    def list_lan_interfaces(self) -> List[LanInfo]:
        """List LAN interfaces known to the LAN browser."""
        return decode_list(self._call("GET", "lan/browser/interfaces/").result, LanInfo)

    def list_lan_interface_hosts(self, interface: str) -> List[LanInterfaceHost]:
        """List hosts seen on a LAN interface."""
        return decode_list(self._call("GET", f"lan/browser/{interface}/").result, LanInterfaceHost)

    def get_lan_interface_host(self, interface: str, identifier: str) -> LanInterfaceHost:
        """Get a host seen on a LAN interface."""
        envelope = self._call("GET", f"lan/browser/{interface}/{identifier}/")
        return decode_object(envelope.result, LanInterfaceHost)

    # =========================================================================
    # Virtual machines
    # =========================================================================

    def get_virtual_machine_info(self) -> VirtualMachinesInfo:
        """Get the resources available to virtual machines."""
        return decode_object(self._call("GET", "vm/info/").result, VirtualMachinesInfo)

    def get_virtual_machine_distributions(self) -> List[VirtualMachineDistribution]:
        """List the disk images offered by the Freebox."""
        return decode_list(self._call("GET", "vm/distros/").result, VirtualMachineDistribution)

    def list_virtual_machines(self) -> List[VirtualMachine]:
        """List virtual machines."""
        return decode_list(self._call("GET", "vm/").result, VirtualMachine)

    def create_virtual_machine(self, payload: VirtualMachinePayload) -> VirtualMachine:
        """Create a virtual machine."""
        envelope = self._call("POST", "vm/", json_payload=payload.to_payload())
        return decode_object(envelope.result, VirtualMachine)

    def get_virtual_machine(self, identifier: int) -> VirtualMachine:
        """Get a virtual machine."""
        return decode_object(self._call("GET", f"vm/{identifier}").result, VirtualMachine)

    def update_virtual_machine(self, identifier: int, payload: VirtualMachinePayload) -> VirtualMachine:
        """Update a virtual machine."""
        envelope = self._call("PUT", f"vm/{identifier}", json_payload=payload.to_payload())
        return decode_object(envelope.result, VirtualMachine)

    def delete_virtual_machine(self, identifier: int) -> None:
        """Delete a virtual machine."""
        self._call("DELETE", f"vm/{identifier}")

    def start_virtual_machine(self, identifier: int) -> None:
        """Start a virtual machine."""
        self._call("POST", f"vm/{identifier}/start")

    def stop_virtual_machine(self, identifier: int) -> None:
        """Ask a virtual machine to shut down (ACPI power button)."""
        self._call("POST", f"vm/{identifier}/powerbutton")

    def kill_virtual_machine(self, identifier: int) -> None:
        """Stop a virtual machine immediately."""
        self._call("POST", f"vm/{identifier}/stop")

    # =========================================================================
    # Virtual disks
    # =========================================================================

    def get_virtual_disk_info(self, path: str) -> VirtualDiskInfo:
        """Describe the disk image at ``path``."""
        envelope = self._call("POST", "vm/disk/info", json_payload={"disk_path": encode_path(path)})
        return decode_object(envelope.result, VirtualDiskInfo)

    def get_virtual_disk_task(self, identifier: int) -> VirtualDiskTask:
        """Get a disk task."""
        return decode_object(self._call("GET", f"vm/disk/task/{identifier}").result, VirtualDiskTask)

    def create_virtual_disk(self, payload: VirtualDiskCreatePayload) -> int:
        """Start creating a disk image.

        Returns:
            Id of the disk task to poll.
        """
        return _task_id(self._call("POST", "vm/disk/create", json_payload=payload.to_payload()))

    def resize_virtual_disk(self, payload: VirtualDiskResizePayload) -> int:
        """Start resizing a disk image.

        Returns:
            Id of the disk task to poll.
        """
        return _task_id(self._call("POST", "vm/disk/resize", json_payload=payload.to_payload()))

    def delete_virtual_disk_task(self, identifier: int) -> None:
        """Delete a finished disk task."""
        self._call("DELETE", f"vm/disk/task/{identifier}")

    # =========================================================================
    # Filesystem
    # =========================================================================

    def get_file_info(self, path: str) -> FileInfo:
        """Get metadata about a file or directory.

        Raises:
            PathNotFoundError: If nothing exists at ``path``.
        """
        envelope = self._call("GET", f"fs/info/{encode_path(path)}")
        if envelope.result is None:
            return FileInfo()
        return decode_object(envelope.result, FileInfo)

    def remove_files(self, paths: Iterable[str]) -> FileSystemTask:
        """Start removing files."""
        envelope = self._call("POST", "fs/rm/", json_payload={"files": [encode_path(p) for p in paths]})
        return decode_object(envelope.result, FileSystemTask)

    def list_file_system_tasks(self) -> List[FileSystemTask]:
        """List filesystem tasks."""
        return decode_list(self._call("GET", "fs/tasks/").result, FileSystemTask)

    def get_file_system_task(self, identifier: int) -> FileSystemTask:
        """Get a filesystem task.

        Raises:
            TaskNotFoundError: If the task does not exist.
        """
        return decode_object(self._call("GET", f"fs/tasks/{identifier}").result, FileSystemTask)

    def update_file_system_task(self, identifier: int, state: str) -> FileSystemTask:
        """Pause (``paused``) or resume (``running``) a filesystem task."""
        envelope = self._call("PUT", f"fs/tasks/{identifier}", json_payload={"state": state})
        return decode_object(envelope.result, FileSystemTask)

    def delete_file_system_task(self, identifier: int) -> None:
        """Delete a filesystem task.

        Raises:
            TaskNotFoundError: If the task does not exist.
        """
        self._call("DELETE", f"fs/tasks/{identifier}")

    def create_directory(self, parent: str, name: str) -> str:
        """Create a directory.

        Returns:
            Path of the new directory.

        Raises:
            DestinationConflictError: If the directory already exists.
        """
        envelope = self._call("POST", "fs/mkdir/", json_payload={
            "parent": encode_path(parent),
            "dirname": name,
        })
        return decode_path(decode_value(envelope.result, str)) or ""

    def add_hash_file_task(self, payload: HashPayload) -> FileSystemTask:
        """Start hashing a file."""
        envelope = self._call("POST", "fs/hash/", json_payload=payload.to_payload())
        return decode_object(envelope.result, FileSystemTask)

    def get_hash_result(self, identifier: int) -> str:
        """Get the digest computed by a finished hash task."""
        return decode_value(self._call("GET", f"fs/tasks/{identifier}/hash/").result, str)

    def move_files(
        self,
        sources: Iterable[str],
        destination: str,
        mode: str = FILE_MODE_OVERWRITE,
    ) -> FileSystemTask:
        """Start moving files into ``destination``."""
        envelope = self._call("POST", "fs/mv/", json_payload={
            "files": [encode_path(s) for s in sources],
            "dst": encode_path(destination),
            "mode": mode,
        })
        return decode_object(envelope.result, FileSystemTask)

    def copy_files(
        self,
        sources: Iterable[str],
        destination: str,
        mode: str = FILE_MODE_OVERWRITE,
    ) -> FileSystemTask:
        """Start copying files into ``destination``."""
        envelope = self._call("POST", "fs/cp/", json_payload={
            "files": [encode_path(s) for s in sources],
            "dst": encode_path(destination),
            "mode": mode,
        })
        return decode_object(envelope.result, FileSystemTask)

    def extract_file(self, payload: ExtractFilePayload) -> FileSystemTask:
        """Start extracting an archive."""
        envelope = self._call("POST", "fs/extract/", json_payload=payload.to_payload())
        return decode_object(envelope.result, FileSystemTask)

    def _open_download(self, path: str, token: str) -> File:
        url = f"{self.base_url}/dl/{encode_path(path)}"
        logger.debug("GET dl/ %s", path)
        response = self._send("GET", url, headers={AUTH_HEADER: token}, stream=True)
        if not response.is_success:
            try:
                response.read()
            except httpx.TransportError as e:
                raise NetworkError(f"failed to read error body of GET {url}: {e}") from e
            finally:
                response.close()
            self._decode_response(response)

        headers = Message()
        content_type = ""
        if "content-type" in response.headers:
            headers["Content-Type"] = response.headers["content-type"]
            content_type = headers.get_content_type()
        if "content-disposition" in response.headers:
            headers["Content-Disposition"] = response.headers["content-disposition"]
        return File(response, content_type=content_type, filename=headers.get_filename())

    def get_file(self, path: str) -> File:
        """Download a file.

        Returns:
            A streamed File, close it once read.
        """
        return self._with_session(lambda token: self._open_download(path, token))

    # =========================================================================
    # Downloads
    # =========================================================================

    def list_download_tasks(self) -> List[DownloadTask]:
        """List download tasks."""
        return decode_list(self._call("GET", "downloads/").result, DownloadTask)

    def get_download_task(self, identifier: int) -> DownloadTask:
        """Get a download task."""
        return decode_object(self._call("GET", f"downloads/{identifier}").result, DownloadTask)

    def add_download_task(self, request: DownloadRequest) -> int:
        """Add a download.

        Returns:
            Id of the new download task.
        """
        return _task_id(self._call("POST", "downloads/add", form=request.to_form()))

    def delete_download_task(self, identifier: int) -> None:
        """Delete a download task, keeping the downloaded files."""
        self._call("DELETE", f"downloads/{identifier}")

    def erase_download_task(self, identifier: int) -> None:
        """Delete a download task and its downloaded files."""
        self._call("DELETE", f"downloads/{identifier}/erase")

    def update_download_task(self, identifier: int, payload: DownloadTaskUpdate) -> None:
        """Update a download task (status, priority, queue position)."""
        self._call("PUT", f"downloads/{identifier}", json_payload=payload.to_payload())

    # =========================================================================
    # Websockets
    # =========================================================================

    def _open_websocket(self, path: str, token: str) -> WebSocketConnection:
        url = re.sub(r"^http", "ws", self._url(path))
        logger.debug("Opening websocket %s", path)
        try:
            return self._ws_connect(
                url,
                additional_headers={AUTH_HEADER: token},
                open_timeout=self.timeout,
            )
        except WebSocketException as e:
            status = getattr(getattr(e, "response", None), "status_code", None)
            if status in (401, 403):
                raise AuthRequiredError(
                    "auth_required", f"websocket handshake rejected with status {status}", status=status
                ) from e
            raise NetworkError(f"failed to open websocket {url}: {e}") from e
        except (OSError, TimeoutError) as e:
            raise NetworkError(f"failed to open websocket {url}: {e}") from e

    def _register_events(self, token: str, topics: List[str]) -> EventStream:
        connection = self._open_websocket("ws/event", token)
        try:
            send_action(connection, {"action": "register", "events": topics})
            await_reply(connection, "register", timeout=self.timeout)
        except FreeboxError:
            connection.close()
            raise
        logger.info("Listening to events: %s", ", ".join(topics))
        return EventStream(connection)

    def listen_events(self, events: Iterable[EventDescription]) -> EventStream:
        """Subscribe to event notifications.

        Args:
            events: Events to receive.

        Returns:
            An EventStream yielding events in arrival order.
        """
        topics = [event.topic for event in events]
        if not topics:
            raise ValueError("at least one event is required")
        return self._with_session(lambda token: self._register_events(token, topics))

    # =========================================================================
    # Uploads
    # =========================================================================

    def _start_upload(self, token: str, start: FileUploadStart, request_id: int) -> FileUpload:
        connection = self._open_websocket("ws/upload", token)
        try:
            send_action(connection, start.to_action(request_id))
            await_reply(connection, "upload_start", request_id, self.timeout)
        except FreeboxError:
            connection.close()
            raise
        logger.info("Upload %d started for %s/%s", request_id, start.dirname, start.filename)
        return FileUpload(connection, request_id, reply_timeout=self.timeout)

    def start_file_upload(self, start: FileUploadStart) -> Tuple[FileUpload, int]:
        """Start uploading a file.

        Returns:
            The writable upload handle and its request id.
        """
        request_id = next(self._upload_ids)
        upload = self._with_session(lambda token: self._start_upload(token, start, request_id))
        return upload, request_id

    def list_upload_tasks(self) -> List[UploadTask]:
        """List upload tasks."""
        return decode_list(self._call("GET", "upload/").result, UploadTask)

    def get_upload_task(self, identifier: int) -> UploadTask:
        """Get an upload task."""
        return decode_object(self._call("GET", f"upload/{identifier}").result, UploadTask)

    def cancel_upload_task(self, identifier: int) -> None:
        """Cancel a running upload."""
        self._call("DELETE", f"upload/{identifier}/cancel")

    def delete_upload_task(self, identifier: int) -> None:
        """Delete an upload task."""
        self._call("DELETE", f"upload/{identifier}")

    def clean_upload_tasks(self) -> None:
        """Delete all finished upload tasks."""
        self._call("DELETE", "upload/clean")
