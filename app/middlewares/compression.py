from __future__ import annotations

import gzip
import logging
from io import BytesIO

from flask import Flask, request

from config import Config


log = logging.getLogger("api")


def _gzip(data: bytes, level: int) -> bytes:
    buf = BytesIO()
    with gzip.GzipFile(fileobj=buf, mode="wb", compresslevel=level) as gz:
        gz.write(data)
    return buf.getvalue()


def _should_compress(response, min_size: int) -> bool:
    if "gzip" not in request.headers.get("Accept-Encoding", "").lower():
        return False
    if not (200 <= response.status_code < 300) or response.direct_passthrough:
        return False
    if "Content-Encoding" in response.headers:
        return False
    if "application/json" not in response.headers.get("Content-Type", "").lower():
        return False
    length = response.calculate_content_length()
    return length is None or length >= min_size


def init_compression(app: Flask, cfg: Config) -> None:
    """Gzip JSON responses of at least COMPRESSION_MIN_SIZE bytes. Off with ENABLE_COMPRESSION=0."""
    if not cfg.ENABLE_COMPRESSION:
        return

    @app.after_request
    def _compress(response):
        if not _should_compress(response, cfg.COMPRESSION_MIN_SIZE):
            return response

        data = response.get_data()
        try:
            packed = _gzip(data, cfg.COMPRESSION_LEVEL)
        except OSError:
            log.warning("gzip failed; sending uncompressed")
            return response

        if len(packed) < len(data):
            response.set_data(packed)
            response.headers["Content-Encoding"] = "gzip"
            response.headers["Vary"] = "Accept-Encoding"
        return response
