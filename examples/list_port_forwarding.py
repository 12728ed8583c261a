#!/usr/bin/env python3
"""List all port forwarding rules configured on a Freebox."""

import os
import json
from dotenv import load_dotenv

# Add parent directory to path for imports
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from mcp_freebox import FreeboxClient, FreeboxError

# Load environment variables from .env file
load_dotenv()

def main():
    # Get Freebox configuration from environment
    endpoint = os.getenv("FREEBOX_ENDPOINT", "mafreebox.freebox.fr")
    version = os.getenv("FREEBOX_VERSION", "v8")
    app_id = os.getenv("FREEBOX_APP_ID")
    token = os.getenv("FREEBOX_TOKEN")

    if not app_id or not token:
        print("Error: FREEBOX_APP_ID or FREEBOX_TOKEN not set in environment or .env file")
        print("Create a .env file with:")
        print("  FREEBOX_ENDPOINT=mafreebox.freebox.fr")
        print("  FREEBOX_APP_ID=your.app.id")
        print("  FREEBOX_TOKEN=your_private_token")
        print("Run examples/authorize_app.py to get a token.")
        return

    print(f"Connecting to Freebox at {endpoint}...")

    with FreeboxClient(endpoint, version, app_id=app_id, private_token=token) as client:
        try:
            rules = client.list_port_forwarding_rules()
        except FreeboxError as e:
            print(f"Failed to list port forwarding rules: {e}")
            return

        print("\nPort Forwarding Rules:")
        print("-" * 80)

        if not rules:
            print("No port forwarding rules found")
        else:
            print(f"{'Id':<6} {'LAN IP':<16} {'WAN Ports':<14} {'LAN Port':<10} {'Proto':<6} {'Comment'}")
            print("-" * 80)

            for rule in rules:
                wan_ports = f"{rule.wan_port_start}-{rule.wan_port_end}"
                print(f"{rule.id:<6} "
                      f"{rule.lan_ip or 'N/A':<16} "
                      f"{wan_ports:<14} "
                      f"{rule.lan_port or 'N/A':<10} "
                      f"{rule.ip_proto or 'N/A':<6} "
                      f"{rule.comment or ''}")

        # Also print as JSON for debugging
        print("\n\nRaw JSON output:")
        print(json.dumps([rule.to_dict() for rule in rules], indent=2))

    print("\nDisconnected from Freebox")

if __name__ == "__main__":
    main()
