#!/usr/bin/env python3
"""Entry point script for the video downloader API."""
import sys

from server.main import main


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nServer stopped by user. Goodbye!")
        sys.exit(0)
