"""RPC handlers that turn Connect JSON messages into service calls."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .domain import Campaign
from .services import CampaignService, CouponIssuanceError, CouponService

log = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1

_TIMESTAMP = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?"
    r"([Zz]|[+-]\d{2}:\d{2})$"
)

_HTTP_STATUS = {
    "canceled": 499,
    "unknown": 500,
    "invalid_argument": 400,
    "deadline_exceeded": 504,
    "not_found": 404,
    "already_exists": 409,
    "permission_denied": 403,
    "resource_exhausted": 429,
    "failed_precondition": 400,
    "aborted": 409,
    "out_of_range": 400,
    "unimplemented": 501,
    "internal": 500,
    "unavailable": 503,
    "data_loss": 500,
    "unauthenticated": 401,
}


class RpcError(Exception):
    """An error reported to the caller with a Connect error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def http_status(self) -> int:
        """The HTTP status that carries this error code."""
        return _HTTP_STATUS.get(self.code, 500)

    def to_dict(self) -> dict[str, str]:
        """The error as a Connect JSON error body."""
        body = {"code": self.code}
        if self.message:
            body["message"] = self.message
        return body


def parse_timestamp(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    A missing timestamp stands for the Unix epoch.
    """
    if value is None:
        return EPOCH
    if not isinstance(value, str):
        raise RpcError("invalid_argument", f"invalid timestamp: {value!r}")
    match = _TIMESTAMP.match(value)
    if match is None:
        raise RpcError("invalid_argument", f"invalid timestamp: {value!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micro = int((fraction or "").ljust(6, "0")[:6])
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        tz = timezone(sign * offset)
    try:
        moment = datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second), micro, tzinfo=tz,
        )
        return moment.astimezone(timezone.utc)
    except (ValueError, OverflowError) as exc:
        raise RpcError("invalid_argument", f"invalid timestamp: {value!r}") from exc


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as an RFC 3339 UTC timestamp; naive values count as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    text = (
        f"{utc.year:04d}-{utc.month:02d}-{utc.day:02d}"
        f"T{utc.hour:02d}:{utc.minute:02d}:{utc.second:02d}"
    )
    if utc.microsecond:
        if utc.microsecond % 1000 == 0:
            text += f".{utc.microsecond // 1000:03d}"
        else:
            text += f".{utc.microsecond:06d}"
    return text + "Z"


def _message(message: Any) -> Mapping[str, Any]:
    if not isinstance(message, Mapping):
        raise RpcError("invalid_argument", "request message must be a JSON object")
    return message


def _field(message: Mapping[str, Any], camel: str, snake: Optional[str] = None) -> Any:
    if camel in message:
        return message[camel]
    if snake is not None:
        return message.get(snake)
    return None


def _int32(value: Any, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise RpcError("invalid_argument", f"invalid value for int32 field {name}")
    if isinstance(value, float):
        if not value.is_integer():
            raise RpcError("invalid_argument", f"invalid value for int32 field {name}")
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value)
        except ValueError as exc:
            raise RpcError(
                "invalid_argument", f"invalid value for int32 field {name}"
            ) from exc
    elif not isinstance(value, int):
        raise RpcError("invalid_argument", f"invalid value for int32 field {name}")
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise RpcError("invalid_argument", f"value out of range for int32 field {name}")
    return value


def _string(value: Any, name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise RpcError("invalid_argument", f"invalid value for string field {name}")
    return value


def _without_defaults(response: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in response.items() if value}


def _campaign_body(campaign: Campaign) -> dict[str, Any]:
    return {
        "id": campaign.id,
        "name": campaign.name,
        "limit": campaign.limit,
        "startDate": format_timestamp(campaign.start_date),
        "endDate": format_timestamp(campaign.end_date),
    }


class CampaignHandler:
    """Serves the CreateCampaign and GetCampaign procedures."""

    def __init__(
        self, campaign_service: CampaignService, coupon_service: CouponService
    ) -> None:
        self._campaign_service = campaign_service
        self._coupon_service = coupon_service

    def create_campaign(self, message: Any) -> dict[str, Any]:
        """Create a campaign and describe it."""
        log.info("CreateCampaign called with: %s", message)
        msg = _message(message)
        name = _string(_field(msg, "name"), "name")
        limit = _int32(_field(msg, "limit"), "limit")
        start = parse_timestamp(_field(msg, "startDate", "start_date"))
        end = parse_timestamp(_field(msg, "endDate", "end_date"))
        try:
            campaign = self._campaign_service.create_campaign(name, limit, start, end)
        except CouponIssuanceError as exc:
            raise RpcError("unknown", str(exc)) from exc
        return _without_defaults(_campaign_body(campaign))

    def get_campaign(self, message: Any) -> dict[str, Any]:
        """Describe a campaign together with the codes issued for it."""
        log.info("GetCampaign called with: %s", message)
        msg = _message(message)
        campaign_id = _int32(_field(msg, "id"), "id")
        try:
            campaign = self._campaign_service.get_campaign(campaign_id)
            if campaign is None:
                raise RpcError("not_found", "campaign not found")
            codes = self._coupon_service.get_list_codes(campaign_id)
        except CouponIssuanceError as exc:
            raise RpcError("unknown", str(exc)) from exc
        body = _campaign_body(campaign)
        body["couponCodes"] = list(codes)
        return _without_defaults(body)


class CouponHandler:
    """Serves the IssueCoupon procedure."""

    def __init__(self, coupon_service: CouponService) -> None:
        self._coupon_service = coupon_service

    def issue_coupon(self, message: Any) -> dict[str, Any]:
        """Issue a coupon for the requested campaign."""
        log.info("IssueCoupon called with: %s", message)
        msg = _message(message)
        campaign_id = _int32(_field(msg, "campaignId", "campaign_id"), "campaignId")
        try:
            coupon = self._coupon_service.issue_coupon(campaign_id)
        except CouponIssuanceError as exc:
            raise RpcError("unknown", str(exc)) from exc
        return _without_defaults({"couponId": coupon.id, "couponCode": coupon.code})