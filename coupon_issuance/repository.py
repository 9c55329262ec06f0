"""Thread-safe in-memory repositories."""

from __future__ import annotations

import threading
from typing import Optional

from .domain import Campaign, Coupon


class MemoryCampaignRepository:
    """Keeps campaigns in a dictionary keyed by id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._campaigns: dict[int, Campaign] = {}

    def create(self, campaign: Campaign) -> None:
        """Store a campaign; one without an id gets the next sequential id."""
        with self._lock:
            if campaign.id == 0:
                campaign.id = len(self._campaigns) + 1
            self._campaigns[campaign.id] = campaign

    def get(self, campaign_id: int) -> Optional[Campaign]:
        """Return the stored campaign, or None when there is none."""
        with self._lock:
            return self._campaigns.get(campaign_id)


class MemoryCouponRepository:
    """Keeps issued coupon codes per campaign."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._codes: dict[int, list[str]] = {}

    def create(self, coupon: Coupon) -> None:
        """Append the coupon's code to its campaign's list."""
        with self._lock:
            self._codes.setdefault(coupon.campaign_id, []).append(coupon.code)

    def get_list(self, campaign_id: int) -> list[str]:
        """Return a copy of the codes issued for a campaign."""
        with self._lock:
            return list(self._codes.get(campaign_id, ()))

    def get_count(self, campaign_id: int) -> int:
        """Return the number of codes issued for a campaign."""
        with self._lock:
            return len(self._codes.get(campaign_id, ()))