"""
=============================================================================
GZIPSTATIC - A Gzip-Enabled Static File Server
=============================================================================

Serves a directory over HTTP/1.1 for local development, with:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  • gzip on read, cached next to the raw bytes                       │
    │  • a byte-bounded LRU memory cache, checked against mtime on every  │
    │    request                                                          │
    │  • ETag / Last-Modified conditional requests (304)                  │
    │  • path sandboxing on the resolved filesystem path                  │
    │  • optional CORS and a polling file watcher                         │
    │  • an optional upload API that stores files with gzip copies        │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    gzipstatic/
    ├── __main__.py          # CLI (python -m gzipstatic / gzip-server)
    ├── server.py            # GzipStaticServer: wires everything
    ├── config.py            # ServerConfig + config file loading
    ├── errors.py            # exception hierarchy with HTTP statuses
    ├── core/
    │   ├── socket_server.py # accept loop
    │   ├── connection.py    # per-connection framing and I/O
    │   ├── thread_pool.py   # worker threads
    │   ├── memory_cache.py  # LRU content cache
    │   └── watcher.py       # polling file watcher
    ├── http/
    │   ├── request.py       # request parsing
    │   ├── response.py      # response building
    │   └── mime_types.py    # MIME type + compressibility
    ├── handlers/
    │   ├── static.py        # the static file pipeline
    │   ├── conditional.py   # 304 negotiation
    │   ├── compression.py   # gzip
    │   └── upload.py        # /api/upload and /api/files
    └── middleware/
        ├── base.py, logging.py, security.py, cors.py

=============================================================================
QUICK START
=============================================================================

    from gzipstatic import GzipStaticServer, ServerConfig

    server = GzipStaticServer(ServerConfig(root_dir="./public", port=3000))
    server.run()

or from a shell:

    gzip-server --dir ./public --watch
=============================================================================
"""

__version__ = "1.0.0"

from .server import GzipStaticServer
from .config import ServerConfig, load_config

__all__ = ["GzipStaticServer", "ServerConfig", "load_config", "__version__"]
