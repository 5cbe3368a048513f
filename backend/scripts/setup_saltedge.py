#!/usr/bin/env python3
"""Salt Edge setup script.

Stores Salt Edge API credentials in the OS keychain and checks them
against the API.

Usage:
    1. Create an application in the Salt Edge dashboard
    2. Copy its App ID and Secret
    3. Generate an RSA key pair and upload the public key to Salt Edge
       (required for signed requests in live mode)
    4. Run this script from the backend directory:
       python scripts/setup_saltedge.py
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from integrations.exceptions import AggregatorError
from integrations.saltedge_client import SaltEdgeClient
from services.credential_manager import missing_credentials, set_credential


def _read_pem(prompt: str) -> str | None:
    path = input(prompt).strip()
    if not path:
        return None
    pem_path = Path(path).expanduser()
    if not pem_path.is_file():
        print(f"  File not found: {pem_path}")
        return None
    return pem_path.read_text()


def _store(credentials: dict[str, str]) -> None:
    answer = input("\nStore these credentials in the keychain? [Y/n] ").strip().lower()
    if answer not in ("", "y", "yes"):
        print("  Skipped keychain storage.")
        return
    for key, value in credentials.items():
        if set_credential(key, value):
            print(f"  Stored {key} in keychain")
        else:
            print(f"  Failed to store {key}")


def main():
    """Prompt for Salt Edge credentials, verify and store them."""
    print("Salt Edge Setup")
    print("=" * 50)
    print()

    missing = missing_credentials()
    if missing:
        print(f"Not yet in the keychain: {', '.join(missing)}")
    else:
        print("App ID and Secret are already stored; entering new values replaces them.")
    print()

    app_id = input("App ID: ").strip()
    secret = input("Secret: ").strip()
    if not app_id or not secret:
        print("Error: App ID and Secret are both required")
        sys.exit(1)

    credentials = {"SALTEDGE_APP_ID": app_id, "SALTEDGE_SECRET": secret}

    private_key = _read_pem("Path to your RSA private key (.pem, blank to skip): ")
    if private_key:
        credentials["SALTEDGE_PRIVATE_KEY"] = private_key
    public_key = _read_pem("Path to the Salt Edge callback public key (.pem, blank to skip): ")
    if public_key:
        credentials["SALTEDGE_PUBLIC_KEY"] = public_key

    print()
    print("Checking credentials against the Salt Edge API...")
    client = SaltEdgeClient(app_id=app_id, secret=secret, private_key=private_key)
    try:
        countries = client.list_countries()
        print(f"Success! {len(countries)} countries available.")
    except AggregatorError as e:
        print(f"Error: {e}")
        print()
        print("Common issues:")
        print("  - App ID or Secret copied incompletely")
        print("  - Application still pending approval (use test providers)")
        print("  - Network connectivity issues")
        sys.exit(1)
    finally:
        client.close()

    _store(credentials)


if __name__ == "__main__":
    main()
