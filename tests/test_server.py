import io
import json
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from wsgiref.util import setup_testing_defaults

import pytest

from coupon_issuance.handlers import RpcError, format_timestamp
from coupon_issuance.server import (
    CREATE_CAMPAIGN_PROCEDURE,
    GET_CAMPAIGN_PROCEDURE,
    ISSUE_COUPON_PROCEDURE,
    create_app,
    main,
    make_server,
)


def _dates():
    now = datetime.now(timezone.utc)
    return (
        format_timestamp(now - timedelta(hours=1)),
        format_timestamp(now + timedelta(days=1)),
    )


def _post(app, path, payload):
    status, headers, body = app.handle("POST", path, json.dumps(payload).encode())
    return status, json.loads(body)


def _create(app, limit=5):
    start, end = _dates()
    return _post(
        app,
        CREATE_CAMPAIGN_PROCEDURE,
        {"name": "Spring", "limit": limit, "startDate": start, "endDate": end},
    )


def _call(app, method, path, body=b"", **extra):
    environ = {}
    setup_testing_defaults(environ)
    environ.update(
        {
            "REQUEST_METHOD": method,
            "PATH_INFO": path,
            "CONTENT_LENGTH": str(len(body)),
            "CONTENT_TYPE": "application/json",
            "wsgi.input": io.BytesIO(body),
        }
    )
    environ.update(extra)
    captured = {}

    def start_response(status, headers):
        captured["status"] = status
        captured["headers"] = dict(headers)

    chunks = app(environ, start_response)
    return captured["status"], captured["headers"], b"".join(chunks)


def test_create_and_get_round_trip():
    app = create_app()
    start, end = _dates()
    status, created = _post(
        app,
        CREATE_CAMPAIGN_PROCEDURE,
        {"name": "Spring", "limit": 5, "startDate": start, "endDate": end},
    )
    assert status == HTTPStatus.OK
    assert created["startDate"] == start
    status, fetched = _post(app, GET_CAMPAIGN_PROCEDURE, {"id": created["id"]})
    assert fetched == created


def test_issued_coupon_is_listed():
    app = create_app()
    _, created = _create(app)
    _, issued = _post(app, ISSUE_COUPON_PROCEDURE, {"campaignId": created["id"]})
    _, fetched = _post(app, GET_CAMPAIGN_PROCEDURE, {"id": created["id"]})
    assert fetched["couponCodes"] == [issued["couponCode"]]


def test_limit_exceeded_is_reported():
    app = create_app()
    _, created = _create(app, limit=1)
    _post(app, ISSUE_COUPON_PROCEDURE, {"campaignId": created["id"]})
    status, body = _post(app, ISSUE_COUPON_PROCEDURE, {"campaignId": created["id"]})
    assert body["message"] == "campaign limit exceeded"
    assert status == RpcError(body["code"], "").http_status


def test_unknown_path():
    status, _, _ = create_app().handle("POST", "/campaign.v1.CampaignService/Nope", b"{}")
    assert status == HTTPStatus.NOT_FOUND


def test_get_method_not_allowed():
    status, headers, _ = create_app().handle("GET", GET_CAMPAIGN_PROCEDURE, b"")
    assert status == HTTPStatus.METHOD_NOT_ALLOWED
    assert ("Allow", "POST") in headers


@pytest.mark.parametrize("payload", [b"", b"{", b"[]"])
def test_malformed_body(payload):
    status, _, body = create_app().handle("POST", GET_CAMPAIGN_PROCEDURE, payload)
    error = json.loads(body)
    assert error["code"] == "invalid_argument"
    assert status == RpcError(error["code"], "").http_status


def test_wsgi_request_with_origin():
    app = create_app()
    _, created = _create(app)
    body = json.dumps({"id": created["id"]}).encode()
    status, headers, payload = _call(
        app, "POST", GET_CAMPAIGN_PROCEDURE, body, HTTP_ORIGIN="http://localhost"
    )
    assert status.startswith("200")
    assert headers["Access-Control-Allow-Origin"] == "*"
    assert json.loads(payload) == created


def test_wsgi_preflight():
    status, headers, payload = _call(
        create_app(),
        "OPTIONS",
        CREATE_CAMPAIGN_PROCEDURE,
        HTTP_ORIGIN="http://localhost",
        HTTP_ACCESS_CONTROL_REQUEST_METHOD="post",
        HTTP_ACCESS_CONTROL_REQUEST_HEADERS="content-type",
    )
    assert status.startswith("204")
    assert headers["Access-Control-Allow-Methods"] == "POST"
    assert headers["Access-Control-Allow-Headers"] == "content-type"
    assert payload == b""


def test_wsgi_rejects_other_content_types():
    status, headers, _ = _call(
        create_app(), "POST", GET_CAMPAIGN_PROCEDURE, b"{}", CONTENT_TYPE="text/plain"
    )
    assert status.startswith("415")
    assert "application/json" in headers["Accept-Post"]


def test_make_server_binds_port():
    server = make_server("127.0.0.1", 0, create_app())
    try:
        assert server.server_port > 0
    finally:
        server.server_close()


def test_main_rejects_bad_port():
    with pytest.raises(SystemExit):
        main(["--port", "not-a-port"])