"""MCP Server for Freebox management.

This module provides an MCP (Model Context Protocol) server for managing a
Freebox through AI assistants. It exposes Freebox OS API operations as MCP
tools.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .exceptions import FreeboxError
from .freebox_client import DEFAULT_VERSION, FreeboxClient
from .types import DHCPStaticLeasePayload, DownloadRequest, IP_PROTO_TCP, PortForwardingRulePayload

# Load environment variables
load_dotenv()

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "mafreebox.freebox.fr"


@dataclass
class ClientConfig:
    """Configuration for the Freebox client."""

    endpoint: str
    version: str
    app_id: str
    private_token: str

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Create configuration from environment variables.

        Returns:
            ClientConfig with values from environment.
        """
        return cls(
            endpoint=os.getenv("FREEBOX_ENDPOINT", DEFAULT_ENDPOINT),
            version=os.getenv("FREEBOX_VERSION", DEFAULT_VERSION),
            app_id=os.getenv("FREEBOX_APP_ID", ""),
            private_token=os.getenv("FREEBOX_TOKEN", ""),
        )


class ClientManager:
    """Manages the Freebox client lifecycle.

    A single FreeboxClient is shared by all tool calls and created on first
    use. The client renews its own session, so it is only rebuilt on reset.

    Attributes:
        config: Client configuration.
    """

    def __init__(self, config: Optional[ClientConfig] = None) -> None:
        """Initialize the client manager.

        Args:
            config: Optional client configuration. If not provided,
                    configuration is loaded from environment variables.
        """
        self._config = config or ClientConfig.from_env()
        self._client: Optional[FreeboxClient] = None
        self._lock = asyncio.Lock()

    @property
    def config(self) -> ClientConfig:
        """Get the client configuration."""
        return self._config

    async def get_client(self) -> FreeboxClient:
        """Get or create the Freebox client.

        Returns:
            Configured FreeboxClient instance.
        """
        async with self._lock:
            if self._client is None:
                logger.debug("Creating new FreeboxClient for %s", self._config.endpoint)
                self._client = FreeboxClient(
                    self._config.endpoint,
                    self._config.version,
                    app_id=self._config.app_id or None,
                    private_token=self._config.private_token or None,
                )
            return self._client

    async def reset_client(self) -> None:
        """Reset the client, forcing a new login on next use."""
        async with self._lock:
            if self._client:
                await asyncio.to_thread(self._client.close)
                self._client = None
            logger.debug("Client reset")


# Global client manager instance
_client_manager = ClientManager()


def get_client_manager() -> ClientManager:
    """Get the global client manager.

    Returns:
        The global ClientManager instance.
    """
    return _client_manager


# Initialize MCP server
server = Server("mcp-freebox")


def _no_arguments() -> Dict[str, Any]:
    return {"type": "object", "properties": {}, "required": []}


def _get_tool_definitions() -> List[Tool]:
    """Get the list of available tool definitions.

    Returns:
        List of Tool definitions for the MCP server.
    """
    return [
        Tool(
            name="freebox_api_version",
            description="Get the Freebox model and API version (no authentication needed)",
            inputSchema=_no_arguments(),
        ),
        Tool(
            name="freebox_login",
            description="Log in to the Freebox and report the permissions granted to the application",
            inputSchema=_no_arguments(),
        ),
        Tool(
            name="list_port_forwarding",
            description="List all port forwarding rules configured on the Freebox",
            inputSchema=_no_arguments(),
        ),
        Tool(
            name="get_port_forwarding",
            description="Get a port forwarding rule by id",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {
                        "type": "integer",
                        "description": "Id of the port forwarding rule"
                    }
                },
                "required": ["id"]
            }
        ),
        Tool(
            name="add_port_forwarding",
            description="Add a new port forwarding rule",
            inputSchema={
                "type": "object",
                "properties": {
                    "wan_port": {
                        "type": "integer",
                        "description": "External port number (start of the range)"
                    },
                    "wan_port_end": {
                        "type": "integer",
                        "description": "End of the external port range (defaults to wan_port)"
                    },
                    "lan_ip": {
                        "type": "string",
                        "description": "LAN IP address to forward to"
                    },
                    "lan_port": {
                        "type": "integer",
                        "description": "LAN port number (defaults to wan_port if not specified)"
                    },
                    "protocol": {
                        "type": "string",
                        "description": "Protocol: tcp (default) or udp",
                        "enum": ["tcp", "udp"]
                    },
                    "src_ip": {
                        "type": "string",
                        "description": "Only forward traffic from this source IP"
                    },
                    "comment": {
                        "type": "string",
                        "description": "Optional comment for the rule"
                    }
                },
                "required": ["wan_port", "lan_ip"]
            }
        ),
        Tool(
            name="delete_port_forwarding",
            description="Delete a port forwarding rule by id",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {
                        "type": "integer",
                        "description": "Id of the port forwarding rule to delete"
                    }
                },
                "required": ["id"]
            }
        ),
        Tool(
            name="list_dhcp_leases",
            description="List all DHCP static leases",
            inputSchema=_no_arguments(),
        ),
        Tool(
            name="add_dhcp_lease",
            description="Add a DHCP static lease (static IP) for a device",
            inputSchema={
                "type": "object",
                "properties": {
                    "mac": {
                        "type": "string",
                        "description": "MAC address of the device"
                    },
                    "ip": {
                        "type": "string",
                        "description": "IP address to reserve"
                    },
                    "comment": {
                        "type": "string",
                        "description": "Optional comment for the lease"
                    }
                },
                "required": ["mac", "ip"]
            }
        ),
        Tool(
            name="delete_dhcp_lease",
            description="Delete a DHCP static lease by id (the device MAC address)",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {
                        "type": "string",
                        "description": "Id of the lease to delete"
                    }
                },
                "required": ["id"]
            }
        ),
        Tool(
            name="list_lan_hosts",
            description="List devices seen on a LAN interface",
            inputSchema={
                "type": "object",
                "properties": {
                    "interface": {
                        "type": "string",
                        "description": "LAN interface name (default: pub)"
                    }
                },
                "required": []
            }
        ),
        Tool(
            name="list_virtual_machines",
            description="List virtual machines hosted on the Freebox",
            inputSchema=_no_arguments(),
        ),
        Tool(
            name="start_virtual_machine",
            description="Start a virtual machine",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {
                        "type": "integer",
                        "description": "Id of the virtual machine"
                    }
                },
                "required": ["id"]
            }
        ),
        Tool(
            name="stop_virtual_machine",
            description="Stop a virtual machine (ACPI shutdown, or immediate with force)",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {
                        "type": "integer",
                        "description": "Id of the virtual machine"
                    },
                    "force": {
                        "type": "boolean",
                        "description": "Kill the virtual machine instead of asking it to shut down"
                    }
                },
                "required": ["id"]
            }
        ),
        Tool(
            name="list_downloads",
            description="List download manager tasks",
            inputSchema=_no_arguments(),
        ),
        Tool(
            name="add_download",
            description="Add a download to the Freebox download manager",
            inputSchema={
                "type": "object",
                "properties": {
                    "url": {
                        "type": "string",
                        "description": "URL to download"
                    },
                    "download_dir": {
                        "type": "string",
                        "description": "Destination directory, e.g. /Freebox/Downloads"
                    }
                },
                "required": ["url"]
            }
        ),
        Tool(
            name="get_file_info",
            description="Get information about a file or directory on the Freebox storage",
            inputSchema={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path, e.g. /Freebox/Downloads"
                    }
                },
                "required": ["path"]
            }
        ),
        Tool(
            name="list_filesystem_tasks",
            description="List filesystem tasks (copies, moves, extractions...)",
            inputSchema=_no_arguments(),
        ),
        Tool(
            name="freebox_diagnostics",
            description="Get diagnostic information about the Freebox connection and session",
            inputSchema=_no_arguments(),
        ),
    ]


def _handle_tool_call(
    client: FreeboxClient,
    name: str,
    arguments: Dict[str, Any]
) -> Any:
    """Handle a tool call and return a JSON serializable result.

    Args:
        client: The FreeboxClient instance.
        name: The tool name.
        arguments: The tool arguments.

    Returns:
        The result of the tool call.

    Raises:
        ValueError: If the tool name is unknown.
    """
    if name == "freebox_api_version":
        return client.api_version().to_dict()

    elif name == "freebox_login":
        permissions = client.login()
        return {"success": True, "permissions": permissions.granted()}

    elif name == "list_port_forwarding":
        return [rule.to_dict() for rule in client.list_port_forwarding_rules()]

    elif name == "get_port_forwarding":
        return client.get_port_forwarding_rule(int(arguments["id"])).to_dict()

    elif name == "add_port_forwarding":
        wan_port = int(arguments["wan_port"])
        rule = client.create_port_forwarding_rule(PortForwardingRulePayload(
            enabled=True,
            ip_proto=arguments.get("protocol", IP_PROTO_TCP),
            wan_port_start=wan_port,
            wan_port_end=int(arguments.get("wan_port_end", wan_port)),
            lan_ip=arguments["lan_ip"],
            lan_port=int(arguments.get("lan_port", wan_port)),
            src_ip=arguments.get("src_ip"),
            comment=arguments.get("comment"),
        ))
        return rule.to_dict()

    elif name == "delete_port_forwarding":
        client.delete_port_forwarding_rule(int(arguments["id"]))
        return {"success": True, "deleted": arguments["id"]}

    elif name == "list_dhcp_leases":
        return [lease.to_dict() for lease in client.list_dhcp_static_leases()]

    elif name == "add_dhcp_lease":
        lease = client.create_dhcp_static_lease(DHCPStaticLeasePayload(
            mac=arguments["mac"],
            ip=arguments["ip"],
            comment=arguments.get("comment"),
        ))
        return lease.to_dict()

    elif name == "delete_dhcp_lease":
        client.delete_dhcp_static_lease(arguments["id"])
        return {"success": True, "deleted": arguments["id"]}

    elif name == "list_lan_hosts":
        interface = arguments.get("interface", "pub")
        return [host.to_dict() for host in client.list_lan_interface_hosts(interface)]

    elif name == "list_virtual_machines":
        return [vm.to_dict() for vm in client.list_virtual_machines()]

    elif name == "start_virtual_machine":
        client.start_virtual_machine(int(arguments["id"]))
        return {"success": True, "started": arguments["id"]}

    elif name == "stop_virtual_machine":
        if arguments.get("force"):
            client.kill_virtual_machine(int(arguments["id"]))
        else:
            client.stop_virtual_machine(int(arguments["id"]))
        return {"success": True, "stopped": arguments["id"]}

    elif name == "list_downloads":
        return [task.to_dict() for task in client.list_download_tasks()]

    elif name == "add_download":
        task_id = client.add_download_task(DownloadRequest(
            download_urls=[arguments["url"]],
            download_dir=arguments.get("download_dir"),
        ))
        return {"success": True, "id": task_id}

    elif name == "get_file_info":
        return client.get_file_info(arguments["path"]).to_dict()

    elif name == "list_filesystem_tasks":
        return [task.to_dict() for task in client.list_file_system_tasks()]

    elif name == "freebox_diagnostics":
        return client.get_diagnostics()

    else:
        raise ValueError(f"Unknown tool: {name}")


@server.list_tools()
async def list_tools() -> List[Tool]:
    """List available tools.

    Returns:
        List of available Tool definitions.
    """
    return _get_tool_definitions()


@server.call_tool()
async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
    """Handle tool calls.

    Args:
        name: The tool name to call.
        arguments: The arguments for the tool.

    Returns:
        List containing a single TextContent with the JSON result.
    """
    manager = get_client_manager()
    client = await manager.get_client()

    try:
        result = await asyncio.to_thread(_handle_tool_call, client, name, arguments or {})
        return [TextContent(type="text", text=json.dumps(result, indent=2))]
    except FreeboxError as e:
        logger.warning("Freebox error in %s: %s", name, e)
        return [TextContent(type="text", text=json.dumps(e.to_dict(), indent=2))]
    except (ValueError, KeyError) as e:
        logger.warning("Invalid tool call: %s", e)
        return [TextContent(type="text", text=json.dumps({"error": str(e)}, indent=2))]
    except Exception as e:
        logger.exception("Tool call error for %s: %s", name, e)
        return [TextContent(type="text", text=json.dumps({"error": str(e)}, indent=2))]


def main() -> None:
    """Main entry point for the MCP server."""
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    async def run() -> None:
        """Run the MCP server."""
        logger.info("Starting MCP Freebox server")
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )

    asyncio.run(run())


if __name__ == "__main__":
    main()
