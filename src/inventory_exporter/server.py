"""HTTP surface: /metrics exposition and /refresh trigger."""

import logging
import socket
from typing import Callable, Iterable, List, Tuple
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client.exposition import ThreadingWSGIServer

from .collectors import CollectionError
from .config import parse_listen_address
from .engine import CollectionEngine

logger = logging.getLogger(__name__)

StartResponse = Callable[[str, List[Tuple[str, str]]], Callable]


class ThreadingWSGIServerV6(ThreadingWSGIServer):
    address_family = socket.AF_INET6


class QuietRequestHandler(WSGIRequestHandler):
    """Routes access logs to the module logger at DEBUG."""

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


def create_app(engine: CollectionEngine):
    """
    Build the exporter WSGI application.

    Routes:
        /metrics: current snapshot in the Prometheus text format
        /refresh: run a collection pass immediately
    """

    def app(environ: dict, start_response: StartResponse) -> Iterable[bytes]:
        path = environ.get("PATH_INFO", "/")

        if path == "/metrics":
            output, content_type = engine.render()
            start_response("200 OK", [("Content-Type", content_type)])
            return [output]

        if path == "/refresh":
            try:
                engine.run_pass()
            except CollectionError as e:
                logger.error(f"Refresh failed: {e}")
                start_response("500 Internal Server Error", [("Content-Type", "text/plain; charset=utf-8")])
                return [b"Error while collecting data\n"]
            start_response("200 OK", [("Content-Type", "text/plain; charset=utf-8")])
            return [b"Data collection triggered\n"]

        start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
        return [b"Not Found\n"]

    return app


def make_exporter_server(engine: CollectionEngine, listen_address: str) -> WSGIServer:
    """
    Bind the exporter HTTP server.

    Args:
        engine: Collection engine backing both routes
        listen_address: "host:port"; an empty host binds every interface

    Returns:
        Bound server; call serve_forever() to start handling requests
    """
    host, port = parse_listen_address(listen_address)
    server_class = ThreadingWSGIServerV6 if ":" in host else ThreadingWSGIServer
    return make_server(
        host,
        port,
        create_app(engine),
        server_class=server_class,
        handler_class=QuietRequestHandler,
    )
