from __future__ import annotations

from dataclasses import dataclass

from streettalk.domain.models import ActionType, RateLimitStatus
from streettalk.domain.policies import describe_status


@dataclass(frozen=True, slots=True)
class RateLimitBannerDTO:
    text: str
    current: int
    max: int
    at_limit: bool
    near_limit: bool

    @property
    def progress_percent(self) -> float:
        return min(100.0, self.current * 100 / self.max)

    @classmethod
    def from_status(cls, action: ActionType, status: RateLimitStatus) -> "RateLimitBannerDTO":
        return cls(
            text=describe_status(action, status),
            current=status.current,
            max=status.max,
            at_limit=status.at_limit,
            near_limit=status.near_limit,
        )
