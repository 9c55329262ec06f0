"""Campaign and coupon business rules."""

from __future__ import annotations

import random
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from .domain import Campaign, CampaignRepository, Coupon, CouponRepository

Clock = Callable[[], datetime]

_HANGUL_FIRST = 0xAC00
_HANGUL_LAST = 0xD7A3
_CODE_LENGTH = 10
_MAX_CODE_ATTEMPTS = 5


class CouponIssuanceError(Exception):
    """Base class for errors raised by the services."""


class CampaignValidationError(CouponIssuanceError, ValueError):
    """The campaign's dates break the creation rules."""


class CampaignNotFoundError(CouponIssuanceError, LookupError):
    def __init__(self, message: str = "campaign not found") -> None:
        super().__init__(message)


class CampaignLimitExceededError(CouponIssuanceError):
    def __init__(self, message: str = "campaign limit exceeded") -> None:
        super().__init__(message)


class CampaignNotStartedError(CouponIssuanceError):
    def __init__(self, message: str = "campaign not started") -> None:
        super().__init__(message)


class CampaignExpiredError(CouponIssuanceError):
    def __init__(self, message: str = "campaign expired") -> None:
        super().__init__(message)


class CodeGenerationError(CouponIssuanceError):
    def __init__(self, message: str = "failed to generate unique coupon code") -> None:
        super().__init__(message)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _now_like(clock: Clock, reference: datetime) -> datetime:
    """Current time, made comparable with ``reference`` (naive or aware)."""
    now = clock()
    if reference.tzinfo is None and now.tzinfo is not None:
        return now.astimezone().replace(tzinfo=None)
    if reference.tzinfo is not None and now.tzinfo is None:
        return now.astimezone()
    return now


def _add_year(moment: datetime) -> datetime:
    """One calendar year later; 29 February rolls over to 1 March."""
    try:
        return moment.replace(year=moment.year + 1)
    except ValueError:
        return moment.replace(year=moment.year + 1, month=3, day=1)


def hangul_code(rng: random.Random) -> str:
    """A ten-character code: mostly Hangul syllables, about one in ten a digit."""
    chars = []
    for _ in range(_CODE_LENGTH):
        if rng.randrange(10) != 0:
            span = _HANGUL_LAST - _HANGUL_FIRST + 1
            chars.append(chr(rng.randrange(span) + _HANGUL_FIRST))
        else:
            chars.append(chr(rng.randrange(10) + ord("0")))
    return "".join(chars)


class CampaignService:
    """Creates campaigns and reads them back with their issued count."""

    def __init__(
        self,
        campaign_repo: CampaignRepository,
        coupon_repo: CouponRepository,
        clock: Optional[Clock] = None,
    ) -> None:
        self._campaign_repo = campaign_repo
        self._coupon_repo = coupon_repo
        self._clock = clock or _utc_now

    def create_campaign(
        self, name: str, limit: int, start_date: datetime, end_date: datetime
    ) -> Campaign:
        """Validate the dates, store a new campaign and return it."""
        now = _now_like(self._clock, start_date)
        if start_date > _add_year(now):
            raise CampaignValidationError(
                "campaign start date must be within one year from now"
            )
        if end_date < start_date:
            raise CampaignValidationError(
                "campaign end date must not be before its start date"
            )
        if end_date > _add_year(start_date):
            raise CampaignValidationError(
                "campaign may last at most one year from its start date"
            )
        campaign = Campaign(name, limit, start_date, end_date)
        self._campaign_repo.create(campaign)
        return campaign

    def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        """Return the campaign with its issued count refreshed, or None."""
        campaign = self._campaign_repo.get(campaign_id)
        if campaign is None:
            return None
        campaign.issued_count = self._coupon_repo.get_count(campaign_id)
        return campaign


class CouponService:
    """Issues coupons with unique codes, one issuance at a time."""

    def __init__(
        self,
        repo: CouponRepository,
        campaign_service: CampaignService,
        rng: Optional[random.Random] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._repo = repo
        self._campaign_service = campaign_service
        self._rng = rng or random.Random()
        self._clock = clock or _utc_now
        self._used_codes: set[str] = set()
        self._lock = threading.Lock()

    def issue_coupon(self, campaign_id: int) -> Coupon:
        """Issue a coupon for an active campaign that has not reached its limit."""
        with self._lock:
            campaign = self._campaign_service.get_campaign(campaign_id)
            if campaign is None:
                raise CampaignNotFoundError()

            if campaign.limit <= self._repo.get_count(campaign_id):
                raise CampaignLimitExceededError()
            if campaign.start_date > _now_like(self._clock, campaign.start_date):
                raise CampaignNotStartedError()
            if campaign.end_date < _now_like(self._clock, campaign.end_date):
                raise CampaignExpiredError()

            code = self._claim_code()
            coupon = Coupon(campaign_id, code)
            try:
                self._repo.create(coupon)
            except Exception:
                self._used_codes.discard(code)
                raise

            campaign.issued_count = self._repo.get_count(campaign_id)
            return coupon

    def _claim_code(self) -> str:
        for _ in range(_MAX_CODE_ATTEMPTS):
            code = hangul_code(self._rng)
            if code not in self._used_codes:
                self._used_codes.add(code)
                return code
        raise CodeGenerationError()

    def get_list_codes(self, campaign_id: int) -> list[str]:
        """Return the codes issued for a campaign."""
        return self._repo.get_list(campaign_id)