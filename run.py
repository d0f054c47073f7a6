#!/usr/bin/env python3
"""
Receipt Tracker
Run this file to start the API server.
"""

import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

import uvicorn

from receipt_tracker.main import create_app


def main():
    port_env = os.environ.get("PORT")
    try:
        port = int(port_env) if port_env else 8000
    except ValueError:
        print(f"Invalid PORT value: {port_env}, using default 8000")
        port = 8000

    print(f"Receipt Tracker listening on http://0.0.0.0:{port} (docs at /docs)")
    uvicorn.run(create_app(), host="0.0.0.0", port=port, log_level="info")


if __name__ == "__main__":
    main()
