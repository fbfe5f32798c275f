"""
Unit tests for the worker pool and the server's handling of connections
that expire in its queue.
"""

import socket
import threading

import pytest

from gzipstatic import GzipStaticServer, ServerConfig
from gzipstatic.core import Connection, ThreadPool


def occupy_single_worker(pool):
    """Submit a task that holds the only worker until the returned event is set."""
    started = threading.Event()
    release = threading.Event()

    def hold():
        started.set()
        release.wait(5.0)

    assert pool.submit(hold)
    assert started.wait(5.0)
    return release


class TestThreadPool:
    def test_runs_tasks(self):
        pool = ThreadPool(min_workers=2, max_workers=2)
        pool.start()
        done = threading.Event()
        try:
            assert pool.submit(done.set)
            assert done.wait(5.0)
        finally:
            pool.shutdown(wait=True, timeout=5.0)

    def test_submit_before_start(self):
        with pytest.raises(RuntimeError):
            ThreadPool().submit(lambda: None)

    def test_full_queue_refuses(self):
        pool = ThreadPool(min_workers=1, max_workers=1, max_queue_size=1)
        pool.start()
        release = occupy_single_worker(pool)
        try:
            assert pool.submit(lambda: None)
            assert pool.submit(lambda: None) is False
        finally:
            release.set()
            pool.shutdown(wait=True, timeout=5.0)

    def test_expired_task_runs_on_drop_instead(self):
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()
        ran = threading.Event()
        dropped = threading.Event()

        release = occupy_single_worker(pool)
        pool.submit(ran.set, timeout=0.01, on_drop=dropped.set)
        threading.Event().wait(0.1)
        release.set()

        assert dropped.wait(5.0)
        pool.shutdown(wait=True, timeout=5.0)
        assert not ran.is_set()

    def test_failing_on_drop_does_not_kill_worker(self):
        pool = ThreadPool(min_workers=1, max_workers=1)
        pool.start()
        after = threading.Event()

        def broken():
            raise RuntimeError("boom")

        release = occupy_single_worker(pool)
        pool.submit(lambda: None, timeout=0.01, on_drop=broken)
        threading.Event().wait(0.1)
        release.set()

        try:
            assert pool.submit(after.set)
            assert after.wait(5.0)
        finally:
            pool.shutdown(wait=True, timeout=5.0)


class TestExpiredConnection:
    def test_expired_connection_gets_503_and_is_closed(self, site_root):
        server = GzipStaticServer(
            ServerConfig(root_dir=str(site_root), min_workers=1, max_workers=1, timeout=0.05),
            configure_logging=False,
        )
        pool = server._thread_pool
        pool.start()

        server_side, client_side = socket.socketpair()
        client_side.settimeout(5.0)
        conn = Connection(socket=server_side, address=("127.0.0.1", 0))

        release = occupy_single_worker(pool)
        server._handle_connection(conn)
        threading.Event().wait(0.2)
        release.set()
        pool.shutdown(wait=True, timeout=5.0)

        chunks = []
        while True:
            chunk = client_side.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
        client_side.close()

        assert b"".join(chunks).startswith(b"HTTP/1.1 503 ")
        assert server_side.fileno() == -1
