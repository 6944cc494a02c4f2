"""Serve the repomerge API with uvicorn.

Usage:
    python -m repomerge [--host HOST] [--port PORT]
"""

from __future__ import annotations

import argparse

import uvicorn


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="repomerge", description="Run the repomerge API server")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    args = parser.parse_args(argv)

    uvicorn.run("repomerge.api.app:app", host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
