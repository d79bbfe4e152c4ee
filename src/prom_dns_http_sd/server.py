"""HTTP surface serving published SD documents to Prometheus."""

from __future__ import annotations

import json
import logging
from typing import Sequence, Tuple

from flask import Flask, Response, request
from werkzeug.serving import BaseWSGIServer, make_server

from .errors import SerializationError
from .store import DocumentStore, SDConfig

logger = logging.getLogger(__name__)


def encode_documents(sds: Sequence[SDConfig]) -> str:
    """Encode SD configs as a Prometheus HTTP SD JSON array."""
    try:
        return json.dumps([sd.to_dict() for sd in sds])
    except (TypeError, ValueError) as e:
        raise SerializationError(f"failed to encode SD documents: {e}") from e


def create_app(store: DocumentStore) -> Flask:
    """Build the Flask application reading from `store`."""
    app = Flask(__name__)

    @app.route("/healthz")
    def healthz() -> Tuple[str, int]:
        return "", 200

    @app.route("/", defaults={"path": ""})
    @app.route("/<path:path>")
    def documents(path: str) -> Response:
        sds = store.get(request.path)
        if sds is None:
            return Response(status=404)

        try:
            body = encode_documents(sds)
        except SerializationError as e:
            logger.error(f"{request.path}: {e}")
            return Response(status=404)
        return Response(body, status=200, mimetype="application/json")

    return app


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split `host:port` (host optional, as in ':8080') into its parts."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid listen address '{address}', expected [host]:port")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


def build_server(store: DocumentStore, address: str) -> BaseWSGIServer:
    """Bind a threaded WSGI server; raises OSError if the address is taken."""
    host, port = parse_listen_address(address)
    return make_server(host, port, create_app(store), threaded=True)
