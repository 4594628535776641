"""
Example: connect a cloud account and list its documents.

Run (register http://127.0.0.1:54321/callback as the redirect URI first):
    export CLOUDLINK_DROPBOX_CLIENT_ID=your-app-key
    python examples/desktop/connect_and_list.py dropbox

Or via CLI:
    cloudlink connect dropbox --user me
    cloudlink files dropbox --user me
"""

import asyncio
import sys

from cloudlink import AuthError, CloudStorage
from cloudlink.log import configure_logging


async def main() -> None:
    provider = sys.argv[1] if len(sys.argv) > 1 else "dropbox"
    user_id = "example-user"

    configure_logging()
    storage = CloudStorage.from_config()

    try:
        if not storage.status(provider, user_id).connected:
            print(f"Opening your browser to connect {provider}...")
            await storage.connect(provider, user_id)

        files = await storage.list_files(provider, user_id)
        print(f"\n{len(files)} documents in {provider}:")
        for f in files:
            print(f"  {f.name:<40} {f.mime_type:<30} {f.size:>10,} bytes")
    except AuthError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        await storage.close()


if __name__ == "__main__":
    asyncio.run(main())
