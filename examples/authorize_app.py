#!/usr/bin/env python3
"""Register this application on a Freebox and print its private token.

Run it, then press the right arrow on the Freebox front panel to accept.
"""

import os
import socket
from dotenv import load_dotenv

# Add parent directory to path for imports
import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from mcp_freebox import AuthorizationRequest, FreeboxClient, FreeboxError

# Load environment variables from .env file
load_dotenv()

def main():
    endpoint = os.getenv("FREEBOX_ENDPOINT", "mafreebox.freebox.fr")
    version = os.getenv("FREEBOX_VERSION", "v8")
    app_id = os.getenv("FREEBOX_APP_ID", "fr.freebox.mcp")

    request = AuthorizationRequest(
        app_id=app_id,
        app_name="MCP Freebox",
        app_version="0.1.0",
        device_name=socket.gethostname(),
    )

    print(f"Requesting authorization for {app_id} on {endpoint}...")
    print("Accept the request on the Freebox front panel.")

    client = FreeboxClient(endpoint, version)
    try:
        token = client.authorize(request, poll_interval=2.0, max_attempts=60)
    except FreeboxError as e:
        print(f"Authorization failed: {e}")
        return
    finally:
        client.close()

    print("\nAuthorization granted. Add these lines to your .env file:")
    print(f"  FREEBOX_APP_ID={app_id}")
    print(f"  FREEBOX_TOKEN={token}")
    print("\nGrant the 'settings' permission in Freebox OS to manage port forwarding.")

if __name__ == "__main__":
    main()
