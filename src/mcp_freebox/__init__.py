"""MCP server and client for Freebox management.

This package provides a typed client for the Freebox OS API and an MCP
(Model Context Protocol) server exposing it to AI assistants.

Example usage:
    >>> from mcp_freebox import FreeboxClient
    >>> client = FreeboxClient('mafreebox.freebox.fr', 'v8',
    ...                        app_id='fr.example.app', private_token='...')
    >>> for rule in client.list_port_forwarding_rules():
    ...     print(rule.wan_port_start, '->', rule.lan_ip, rule.lan_port)

For MCP server usage, run:
    $ mcp-freebox
"""

from .auth import AuthorizationRequest, Permissions, Session, compute_password
from .envelope import Envelope, decode_path, encode_path, parse_envelope
from .exceptions import (
    AppIDNotSetError,
    AuthRequiredError,
    AuthorizationError,
    BusinessError,
    ConfigurationError,
    ConflictError,
    DecodingError,
    DestinationConflictError,
    FreeboxError,
    NetworkError,
    NotFoundError,
    PathNotFoundError,
    PrivateTokenNotSetError,
    RequestTimeoutError,
    StatusError,
    TaskNotFoundError,
)
from .freebox_client import FreeboxClient
from .server import ClientConfig, ClientManager, get_client_manager, main
from .streaming import EventStream, File, FileUpload
from .types import (
    APIVersion,
    DHCPStaticLeaseInfo,
    DHCPStaticLeasePayload,
    DownloadRequest,
    DownloadTask,
    Event,
    EventDescription,
    FileInfo,
    FileSystemTask,
    FileUploadStart,
    LanInterfaceHost,
    PortForwardingRule,
    PortForwardingRulePayload,
    VirtualMachine,
    VirtualMachinePayload,
)

__version__ = "0.1.0"

__all__ = [
    # Main entry point
    "main",
    # Client
    "FreeboxClient",
    # Server components
    "ClientConfig",
    "ClientManager",
    "get_client_manager",
    # Authentication
    "AuthorizationRequest",
    "Permissions",
    "Session",
    "compute_password",
    # Envelope
    "Envelope",
    "parse_envelope",
    "encode_path",
    "decode_path",
    # Streams
    "File",
    "FileUpload",
    "EventStream",
    # Data classes
    "APIVersion",
    "PortForwardingRule",
    "PortForwardingRulePayload",
    "DHCPStaticLeaseInfo",
    "DHCPStaticLeasePayload",
    "LanInterfaceHost",
    "VirtualMachine",
    "VirtualMachinePayload",
    "FileInfo",
    "FileSystemTask",
    "DownloadTask",
    "DownloadRequest",
    "FileUploadStart",
    "Event",
    "EventDescription",
    # Exceptions
    "FreeboxError",
    "ConfigurationError",
    "AppIDNotSetError",
    "PrivateTokenNotSetError",
    "NetworkError",
    "RequestTimeoutError",
    "DecodingError",
    "StatusError",
    "BusinessError",
    "NotFoundError",
    "PathNotFoundError",
    "TaskNotFoundError",
    "ConflictError",
    "DestinationConflictError",
    "AuthRequiredError",
    "AuthorizationError",
]
