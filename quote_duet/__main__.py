"""
Entry point for running the server as a module.

Usage:
    python -m quote_duet serve
    python -m quote_duet --log-level DEBUG serve --port 3000
    python -m quote_duet listen --url ws://127.0.0.1:3000/websocket
"""

from .main import main

if __name__ == "__main__":
    main()
