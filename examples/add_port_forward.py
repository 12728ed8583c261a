#!/usr/bin/env python3
"""Add a port forwarding rule on a Freebox.

Usage:
    python add_port_forward.py <wan_port> <lan_ip> [lan_port] [tcp|udp] [comment]
"""

import os
from dotenv import load_dotenv

# Add parent directory to path for imports
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from mcp_freebox import FreeboxClient, FreeboxError, PortForwardingRulePayload

# Load environment variables from .env file
load_dotenv()

def main():
    if len(sys.argv) < 3:
        print(__doc__)
        return

    wan_port = int(sys.argv[1])
    lan_ip = sys.argv[2]
    lan_port = int(sys.argv[3]) if len(sys.argv) > 3 else wan_port
    protocol = sys.argv[4] if len(sys.argv) > 4 else "tcp"
    comment = sys.argv[5] if len(sys.argv) > 5 else None

    client = FreeboxClient(
        os.getenv("FREEBOX_ENDPOINT", "mafreebox.freebox.fr"),
        os.getenv("FREEBOX_VERSION", "v8"),
        app_id=os.getenv("FREEBOX_APP_ID"),
        private_token=os.getenv("FREEBOX_TOKEN"),
    )

    try:
        rule = client.create_port_forwarding_rule(PortForwardingRulePayload(
            enabled=True,
            ip_proto=protocol,
            wan_port_start=wan_port,
            wan_port_end=wan_port,
            lan_ip=lan_ip,
            lan_port=lan_port,
            comment=comment,
        ))
    except FreeboxError as e:
        print(f"Failed to add rule: {e}")
        return
    finally:
        client.close()

    print(f"Created rule {rule.id}: {protocol} {wan_port} -> {lan_ip}:{lan_port}")

if __name__ == "__main__":
    main()
