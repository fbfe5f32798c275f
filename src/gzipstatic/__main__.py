"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    gzip-server                          # serve ./public on 127.0.0.1:3000
    gzip-server -d ./dist -p 8000        # other directory and port
    gzip-server --watch --open           # dev mode: watch files, open browser
    gzip-server --no-gzip --no-cache     # plain file server
    gzip-server --upload-dir ./uploads   # enable the /api/ upload endpoints
    gzip-server --init-config            # write gzip-server.config.json
    python -m gzipstatic --help

Flags override environment variables (GZIP_SERVER_*), which override the
config file, which overrides the defaults. Flags left unset are passed as
None so they never clobber a lower layer.
=============================================================================
"""

import argparse
import logging
import sys
from typing import Any, Dict, Optional, Sequence

from . import __version__
from .config import CONFIG_FILE_NAMES, load_config, write_sample_config
from .errors import ConfigError
from .server import GzipStaticServer, setup_logging

MiB = 1024 * 1024


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gzip-server",
        description="A lightweight gzip-enabled static file server for local development",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gzip-server                         Serve ./public on http://127.0.0.1:3000
  gzip-server -d ./dist -p 8000       Serve ./dist on port 8000
  gzip-server --watch --cors          Watch for changes, allow cross-origin
  gzip-server --upload-dir ./uploads  Also accept uploads at /api/upload
  gzip-server --init-config           Write a sample config file
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 3000)")
    parser.add_argument("--host", "-H", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--workers", "-w", type=int, help="Worker threads (max is 4x this)")

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--dir", "-d", dest="root_dir", help="Directory to serve (default: ./public)")
    parser.add_argument("--index", dest="index_file", help="Index document for / (default: index.html)")
    parser.add_argument("--config", "-c", help="Path to a JSON or pyproject.toml config file")

    # ─────────────────────────────────────────────────────────────────────
    # COMPRESSION AND CACHING
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--no-gzip", dest="gzip", action="store_const", const=False,
                        help="Disable gzip compression")
    parser.add_argument("--gzip-level", type=int, help="Gzip level 1-9 (default: 6)")
    parser.add_argument("--gzip-threshold", type=int,
                        help="Compress only files larger than this many bytes (default: 1024)")
    parser.add_argument("--no-cache", dest="cache", action="store_const", const=False,
                        help="Disable the in-memory content cache")
    parser.add_argument("--cache-size", type=int, metavar="MIB",
                        help="Memory cache budget in MiB (default: 100)")
    parser.add_argument("--max-age", dest="cache_max_age", type=int,
                        help="Cache-Control max-age in seconds (default: 3600)")

    # ─────────────────────────────────────────────────────────────────────
    # DEVELOPMENT
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--watch", action="store_const", const=True,
                        help="Watch the directory and drop changed files from the cache")
    parser.add_argument("--cors", action="store_const", const=True,
                        help="Allow cross-origin requests")
    parser.add_argument("--open", dest="open_browser", action="store_const", const=True,
                        help="Open the browser once the server is listening")
    parser.add_argument("--upload-dir", metavar="DIR",
                        help="Enable POST /api/upload and GET /api/files, storing files in DIR")

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING AND META
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--log-level", "-l", type=str.lower,
                        choices=["debug", "info", "warn", "warning", "error"],
                        help="Log level (default: info)")
    parser.add_argument("--log-format", choices=["text", "json"],
                        help="Access log format (default: text)")
    parser.add_argument("--init-config", nargs="?", const=CONFIG_FILE_NAMES[0], metavar="PATH",
                        help=f"Write a sample config file (default: {CONFIG_FILE_NAMES[0]}) and exit")
    parser.add_argument("--version", "-v", action="version", version=f"gzip-server {__version__}")

    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate parsed flags into ServerConfig overrides (None = not given)."""
    overrides: Dict[str, Any] = {
        "port": args.port,
        "host": args.host,
        "root_dir": args.root_dir,
        "index_file": args.index_file,
        "gzip": args.gzip,
        "gzip_level": args.gzip_level,
        "gzip_threshold": args.gzip_threshold,
        "cache": args.cache,
        "cache_max_age": args.cache_max_age,
        "watch": args.watch,
        "cors": args.cors,
        "open_browser": args.open_browser,
        "upload_dir": args.upload_dir,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    if args.cache_size is not None:
        overrides["cache_max_size"] = args.cache_size * MiB
    if args.workers is not None:
        overrides["min_workers"] = args.workers
        overrides["max_workers"] = args.workers * 4
    return overrides


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.init_config:
        try:
            path = write_sample_config(args.init_config)
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"Configuration file created: {path}")
        return 0

    # Config loading logs warnings; make them visible before the server
    # applies the configured level
    setup_logging(logging.INFO)

    try:
        config = load_config(args.config, overrides_from_args(args))
        server = GzipStaticServer(config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
