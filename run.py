"""
Application Entry Point
"""
import sys

from live_bid_sync.cli import main
from live_bid_sync.core.config import get_settings

settings = get_settings()

if __name__ == "__main__":
    print("=" * 70)
    print(f"🎯 {settings.APP_NAME} v{settings.APP_VERSION}")
    print(f"   Live channel: {settings.SOCKET_URL}")
    print(f"   API: {settings.API_BASE_URL}")
    print("=" * 70)

    sys.exit(main())
