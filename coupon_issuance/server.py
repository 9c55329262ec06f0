"""WSGI application speaking the Connect unary JSON protocol, and its command."""

from __future__ import annotations

import argparse
import json
import logging
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any, Callable, Iterable, Optional
from wsgiref.simple_server import WSGIServer
from wsgiref.simple_server import make_server as _wsgi_make_server

from .handlers import CampaignHandler, CouponHandler, RpcError
from .repository import MemoryCampaignRepository, MemoryCouponRepository
from .services import CampaignService, CouponService

log = logging.getLogger(__name__)

CAMPAIGN_SERVICE_NAME = "campaign.v1.CampaignService"
COUPON_SERVICE_NAME = "coupon.v1.CouponService"
CREATE_CAMPAIGN_PROCEDURE = "/campaign.v1.CampaignService/CreateCampaign"
GET_CAMPAIGN_PROCEDURE = "/campaign.v1.CampaignService/GetCampaign"
ISSUE_COUPON_PROCEDURE = "/coupon.v1.CouponService/IssueCoupon"

ALLOWED_METHODS = ("GET", "POST")
DEFAULT_PORT = 8080

Procedure = Callable[[Mapping[str, Any]], dict]
Reply = tuple[int, list[tuple[str, str]], bytes]

_JSON_HEADERS = [("Content-Type", "application/json")]
_JSON_TYPES = ("application/json", "application/json; charset=utf-8")


def _decode(body: bytes) -> dict[str, Any]:
    if not body:
        raise RpcError(
            "invalid_argument", "zero-length payload is not a valid JSON object"
        )
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise RpcError("invalid_argument", f"unmarshal message: {exc}") from exc
    if not isinstance(message, dict):
        raise RpcError("invalid_argument", "unmarshal message: expected a JSON object")
    return message


def _error_reply(error: RpcError) -> Reply:
    body = json.dumps(error.to_dict(), ensure_ascii=False).encode("utf-8")
    return error.http_status, list(_JSON_HEADERS), body


def _is_json(content_type: str) -> bool:
    normalized = "; ".join(part.strip() for part in content_type.lower().split(";"))
    return normalized in _JSON_TYPES


def _read_body(environ: Mapping[str, Any]) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    if length <= 0:
        return b""
    return environ["wsgi.input"].read(length)


def _preflight_headers(environ: Mapping[str, Any]) -> list[tuple[str, str]]:
    headers = [
        (
            "Vary",
            "Origin, Access-Control-Request-Method, Access-Control-Request-Headers",
        )
    ]
    origin = environ.get("HTTP_ORIGIN", "")
    requested = environ.get("HTTP_ACCESS_CONTROL_REQUEST_METHOD", "").upper()
    if not origin or requested not in ALLOWED_METHODS:
        return headers
    headers.append(("Access-Control-Allow-Origin", "*"))
    headers.append(("Access-Control-Allow-Methods", requested))
    requested_headers = environ.get("HTTP_ACCESS_CONTROL_REQUEST_HEADERS", "")
    if requested_headers:
        headers.append(("Access-Control-Allow-Headers", requested_headers))
    return headers


def _cors_headers(origin: str, method: str) -> list[tuple[str, str]]:
    headers = [("Vary", "Origin")]
    if origin and method in ALLOWED_METHODS:
        headers.append(("Access-Control-Allow-Origin", "*"))
    return headers


class ConnectApp:
    """Routes Connect procedure paths to handler callables, with open CORS."""

    def __init__(self, routes: Mapping[str, Procedure]) -> None:
        self._routes = dict(routes)

    def handle(self, method: str, path: str, body: bytes) -> Reply:
        """Serve one request; returns (status, headers, body)."""
        procedure = self._routes.get(path)
        if procedure is None:
            return (
                HTTPStatus.NOT_FOUND,
                [
                    ("Content-Type", "text/plain; charset=utf-8"),
                    ("X-Content-Type-Options", "nosniff"),
                ],
                b"404 page not found\n",
            )
        if method.upper() != "POST":
            return HTTPStatus.METHOD_NOT_ALLOWED, [("Allow", "POST")], b""
        try:
            reply = procedure(_decode(body))
        except RpcError as exc:
            return _error_reply(exc)
        except Exception as exc:  # noqa: BLE001 - reported to the caller as unknown
            log.exception("procedure %s failed", path)
            return _error_reply(RpcError("unknown", str(exc)))
        payload = json.dumps(reply, ensure_ascii=False).encode("utf-8")
        return HTTPStatus.OK, list(_JSON_HEADERS), payload

    def __call__(
        self, environ: Mapping[str, Any], start_response: Callable[..., Any]
    ) -> Iterable[bytes]:
        method = str(environ.get("REQUEST_METHOD", "GET")).upper()
        path = environ.get("PATH_INFO") or "/"
        origin = environ.get("HTTP_ORIGIN", "")

        if method == "OPTIONS" and environ.get("HTTP_ACCESS_CONTROL_REQUEST_METHOD"):
            status, headers, body = HTTPStatus.NO_CONTENT, _preflight_headers(environ), b""
        else:
            if (
                method == "POST"
                and path in self._routes
                and not _is_json(environ.get("CONTENT_TYPE", ""))
            ):
                status, headers, body = (
                    HTTPStatus.UNSUPPORTED_MEDIA_TYPE,
                    [("Accept-Post", ", ".join(_JSON_TYPES))],
                    b"",
                )
            else:
                status, headers, body = self.handle(method, path, _read_body(environ))
            headers = [*headers, *_cors_headers(origin, method)]

        status_line = f"{int(status)} {HTTPStatus(status).phrase}"
        start_response(status_line, [*headers, ("Content-Length", str(len(body)))])
        return [body]


def create_app() -> ConnectApp:
    """Wire in-memory repositories, services and handlers into an application."""
    campaign_repo = MemoryCampaignRepository()
    coupon_repo = MemoryCouponRepository()

    campaign_service = CampaignService(campaign_repo, coupon_repo)
    coupon_service = CouponService(coupon_repo, campaign_service)

    campaign_handler = CampaignHandler(campaign_service, coupon_service)
    coupon_handler = CouponHandler(coupon_service)

    return ConnectApp(
        {
            CREATE_CAMPAIGN_PROCEDURE: campaign_handler.create_campaign,
            GET_CAMPAIGN_PROCEDURE: campaign_handler.get_campaign,
            ISSUE_COUPON_PROCEDURE: coupon_handler.issue_coupon,
        }
    )


def make_server(host: str, port: int, app: ConnectApp) -> WSGIServer:
    """Bind a WSGI server for the application."""
    return _wsgi_make_server(host, port, app)


def main(argv: Optional[list[str]] = None) -> int:
    """Run the coupon issuance server until interrupted."""
    parser = argparse.ArgumentParser(description="Coupon issuance server")
    parser.add_argument("--host", default="", help="address to listen on")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="port to listen on")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    with make_server(args.host, args.port, create_app()) as server:
        log.info("Server is running on port %d", server.server_port)
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
    return 0