"""Core entities and storage contracts for campaigns and coupons."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable


@dataclass
class Campaign:
    """A coupon campaign with an issuance limit and an active period."""

    name: str
    limit: int
    start_date: datetime
    end_date: datetime
    id: int = 0
    issued_count: int = 0


@dataclass
class Coupon:
    """A coupon issued under a campaign."""

    campaign_id: int
    code: str
    id: int = 0
    used: bool = False


@runtime_checkable
class CampaignRepository(Protocol):
    """Storage for campaigns."""

    def create(self, campaign: Campaign) -> None:
        """Store a campaign, assigning an id when it has none."""
        ...

    def get(self, campaign_id: int) -> Optional[Campaign]:
        """Return the campaign with this id, or None."""
        ...


@runtime_checkable
class CouponRepository(Protocol):
    """Storage for issued coupon codes, grouped by campaign."""

    def create(self, coupon: Coupon) -> None:
        """Record an issued coupon."""
        ...

    def get_list(self, campaign_id: int) -> list[str]:
        """Return the codes issued for a campaign, in issue order."""
        ...

    def get_count(self, campaign_id: int) -> int:
        """Return how many coupons a campaign has issued."""
        ...