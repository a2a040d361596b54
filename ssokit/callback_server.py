"""Loopback HTTP server for capturing browser redirects.

Used by the system browser presenter: the issuer redirects to
``http://127.0.0.1:<port>/...`` and every captured request URL is
handed to a callback. Serves a small HTML page so the user knows
the browser tab can be closed.

Uses only stdlib (http.server, threading, urllib.parse).
"""

# pylint: disable=logging-too-many-args

# pylint: disable=C0103,W0212

from __future__ import annotations

import html
import logging
import threading

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlparse


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger("ssokit.browser")

_PAGE_HTML = """<!DOCTYPE html>
<html>
<head><title>{title}</title>
<style>
  body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
         display: flex; align-items: center; justify-content: center;
         height: 100vh; margin: 0; background: #f0f2f5; color: #1a1a2e; }}
  .card {{ text-align: center; padding: 2rem 3rem; background: white;
          border-radius: 12px; box-shadow: 0 2px 12px rgba(0,0,0,.08); }}
  h1 {{ font-size: 1.5rem; margin-bottom: 0.5rem; }}
  p {{ color: #666; }}
</style></head>
<body><div class="card">
  <h1>{title}</h1>
  <p>{message}</p>
</div></body></html>"""


class LoopbackRedirectServer:
    """Loopback HTTP server that forwards every request URL to a callback.

    Parameters
    ----------
    on_redirect : callable
        Called on the server thread with the absolute URL of each request.
    host : str
        Bind address (default ``"127.0.0.1"``).
    port : int
        Port number (``0`` for auto-assign).
    """

    def __init__(
        self,
        on_redirect: Callable[[str], None],
        host: str = "127.0.0.1",
        port: int = 0,
    ) -> None:
        """Initialize the redirect server."""
        self._on_redirect = on_redirect
        self._host = host
        self._port = port
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._actual_port: int = 0

    @property
    def base_url(self) -> str:
        """The URL prefix served by this server (e.g. ``http://127.0.0.1:54321``)."""
        return f"http://{self._host}:{self._actual_port}"

    @property
    def is_running(self) -> bool:
        """Whether the server thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> str:
        """Start the server on a daemon thread.

        Returns
        -------
        str
            The base URL of the server.
        """
        server_ref = self

        class _RedirectHandler(BaseHTTPRequestHandler):
            """HTTP request handler for browser redirects."""

            def do_GET(self) -> None:
                """Handle GET requests."""
                parsed = urlparse(self.path)
                if parsed.path == "/favicon.ico":
                    self.send_error(404)
                    return

                params = parse_qs(parsed.query)
                error = params.get("error", [None])[0]
                if error:
                    description = params.get("error_description", [None])[0] or error
                    self._send_html(
                        "Authentication Failed", html.escape(str(description), quote=True)
                    )
                else:
                    self._send_html("Done", "You can close this window and return to the app.")

                try:
                    server_ref._on_redirect(f"{server_ref.base_url}{self.path}")
                except Exception:
                    logger.exception("Redirect callback failed")

            def _send_html(self, title: str, message: str) -> None:
                """Send an HTML response with security headers."""
                encoded = _PAGE_HTML.format(title=title, message=message).encode("utf-8")
                self.send_response(200)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.send_header("Cache-Control", "no-store")
                self.send_header(
                    "Content-Security-Policy",
                    "default-src 'none'; style-src 'unsafe-inline'",
                )
                self.send_header("X-Content-Type-Options", "nosniff")
                self.end_headers()
                self.wfile.write(encoded)

            def log_message(self, *args: Any) -> None:
                """Route HTTP server logging to the ssokit logger."""
                if args:
                    logger.debug("Redirect server: %s", args[0] % args[1:])

        self._server = ThreadingHTTPServer((self._host, self._port), _RedirectHandler)
        self._actual_port = self._server.server_address[1]

        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

        logger.debug("Redirect server started on %s", self.base_url)
        return self.base_url

    def stop(self) -> None:
        """Shut down the server."""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None
