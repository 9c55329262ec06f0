# coupon-issuance

A small service for running coupon campaigns. A campaign has a name, a
start and end time and a limit on how many coupons it may hand out. Each
issued coupon gets a unique ten-character code made of Hangul syllables
and, about one character in ten, digits.

The rules checked when a campaign is created:

- the start date must be no more than one year from now;
- the end date must not be before the start date;
- the campaign may last at most one year from its start.

A coupon is issued only while the campaign is running and only while its
limit has not been reached. Issuing is serialised with a lock, so
concurrent requests never hand out more coupons than the limit allows.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Running the server

```
coupon-issuance-server
```

Options:

- `--host` — address to listen on (default: all interfaces);
- `--port` — port to listen on (default: 8080).

The server is a plain WSGI application served by the standard library's
`wsgiref` server. It speaks the Connect unary protocol with JSON bodies:
every call is an HTTP `POST` to the procedure's path with a
`Content-Type` of `application/json`. Other content types get
`415 Unsupported Media Type`, other methods `405 Method Not Allowed`, and
unknown paths `404`.

Create a campaign:

```
POST /campaign.v1.CampaignService/CreateCampaign
{"name": "Spring Sale", "limit": 100,
 "startDate": "2030-03-01T00:00:00Z", "endDate": "2030-03-31T00:00:00Z"}
```

Timestamps are RFC 3339; a missing timestamp is taken as the Unix epoch.
The reply describes the stored campaign (`id`, `name`, `limit`,
`startDate`, `endDate`).

Look up a campaign together with the codes issued so far:

```
POST /campaign.v1.CampaignService/GetCampaign
{"id": 1}
```

The reply adds `couponCodes`. An unknown id gives a `not_found` error.

Issue a coupon:

```
POST /coupon.v1.CouponService/IssueCoupon
{"campaignId": 1}
```

The reply carries `couponCode`. As in protobuf JSON, fields holding a
zero or empty value are left out of every reply; coupons are not given
numeric ids, so `couponId` does not appear. Refusals (campaign not found,
not started, expired, limit exceeded, invalid dates) come back as Connect
JSON error bodies such as `{"code": "unknown", "message": "campaign expired"}`;
malformed requests give `invalid_argument`.

Cross-origin requests are allowed from any origin for `GET` and `POST`,
including preflight `OPTIONS` requests.

## Using it from Python

The services can be used directly, without HTTP:

```python
from datetime import datetime, timedelta, timezone

from coupon_issuance.repository import MemoryCampaignRepository, MemoryCouponRepository
from coupon_issuance.services import (
    CampaignLimitExceededError,
    CampaignService,
    CouponService,
)

coupons = MemoryCouponRepository()
campaigns = CampaignService(MemoryCampaignRepository(), coupons)
issuer = CouponService(coupons, campaigns)

now = datetime.now(timezone.utc)
campaign = campaigns.create_campaign("Spring Sale", 2, now, now + timedelta(days=7))

first = issuer.issue_coupon(campaign.id)
second = issuer.issue_coupon(campaign.id)
try:
    issuer.issue_coupon(campaign.id)
except CampaignLimitExceededError as exc:
    print(exc)  # campaign limit exceeded

print(issuer.get_list_codes(campaign.id))
```

`CampaignService` and `CouponService` take an optional `clock` (a callable
returning the current `datetime`), and `CouponService` an optional
`random.Random` for code generation; `hangul_code(rng)` produces one code.

All refusals derive from `CouponIssuanceError`: `CampaignValidationError`,
`CampaignNotFoundError`, `CampaignLimitExceededError`,
`CampaignNotStartedError`, `CampaignExpiredError` and
`CodeGenerationError`.

The storage contracts are the protocols `CampaignRepository` and
`CouponRepository` in `coupon_issuance.domain`; any object with the same
methods can stand in for the in-memory repositories.

To embed the HTTP side in another WSGI server,
`coupon_issuance.server.create_app()` returns a ready `ConnectApp`, and
`make_server(host, port, app)` builds a `wsgiref` server for it.
`ConnectApp.handle(method, path, body)` serves a single request without
WSGI and returns `(status, headers, body)`.

## What it does not do

- Storage is in memory only: campaigns and coupons are lost when the
  process stops.
- Only the Connect protocol with JSON bodies is served; binary protobuf
  bodies, gRPC and gRPC-Web are not.
- No client library is included; use any HTTP client.
- Coupons cannot be redeemed or marked used.