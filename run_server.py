#!/usr/bin/env python
"""
Server Entry Point

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py

    Or with Gunicorn:
    gunicorn polyglot_shelf.main:app -c gunicorn.conf.py
"""

import argparse
import os
import subprocess

import uvicorn

APP = "polyglot_shelf.main:app"
DEFAULT_PORT = 3000


def run_dev_server(port: int):
    """Run development server with auto-reload."""
    uvicorn.run(
        APP,
        host="0.0.0.0",
        port=port,
        reload=True,
        reload_dirs=["polyglot_shelf"],
        log_level="debug",
        access_log=True,
    )


def run_prod_server(port: int):
    """Run production server with Uvicorn directly."""
    uvicorn.run(
        APP,
        host="0.0.0.0",
        port=port,
        workers=int(os.getenv("WORKERS", 4)),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        access_log=True,
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn(port: int):
    """Run with Gunicorn."""
    subprocess.run(
        ["gunicorn", APP, "-c", "gunicorn.conf.py", "--bind", f"0.0.0.0:{port}"],
        check=True,
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Polyglot Shelf API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run with Gunicorn")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", DEFAULT_PORT)),
        help=f"Port to run on (default: {DEFAULT_PORT})",
    )
    args = parser.parse_args()

    if args.dev:
        print("Starting development server...")
        run_dev_server(args.port)
    elif args.gunicorn:
        print("Starting production server with Gunicorn...")
        run_gunicorn(args.port)
    else:
        print("Starting production server with Uvicorn...")
        run_prod_server(args.port)
