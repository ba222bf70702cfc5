"""Request gating: per-provider daily cost budgets consulted before each call."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Protocol

import structlog

from api.config import Settings
from engine.observation.models import AnswerResponse, utc_now

logger = structlog.get_logger(__name__)


class RequestGate(Protocol):
    """Collaborator that may veto a provider call."""

    def allow(self, provider: str) -> bool: ...

    def record(self, provider: str, response: AnswerResponse) -> None: ...

    def spent_today(self) -> float: ...


class AllowAllGate:
    """Gate that never vetoes."""

    def allow(self, provider: str) -> bool:
        return True

    def record(self, provider: str, response: AnswerResponse) -> None:
        return None

    def spent_today(self) -> float:
        return 0.0


@dataclass
class ProviderUsage:
    """Spend and request count for one provider on one day."""

    day: date
    requests: int = 0
    tokens: int = 0
    cost_usd: float = 0.0

    def to_dict(self) -> dict:
        return {
            "day": self.day.isoformat(),
            "requests": self.requests,
            "tokens": self.tokens,
            "cost_usd": round(self.cost_usd, 6),
        }


@dataclass
class ProviderBudget:
    """Daily USD budget per provider, reset when the UTC date changes.

    Providers without a configured budget are never vetoed.
    """

    daily_budgets: dict[str, float] = field(default_factory=dict)
    clock: Callable[[], datetime] = utc_now
    _usage: dict[str, ProviderUsage] = field(default_factory=dict, init=False)

    def _current(self, provider: str) -> ProviderUsage:
        today = self.clock().date()
        usage = self._usage.get(provider)
        if usage is None or usage.day != today:
            usage = ProviderUsage(day=today)
            self._usage[provider] = usage
        return usage

    def allow(self, provider: str) -> bool:
        budget = self.daily_budgets.get(provider)
        if budget is None:
            return True
        usage = self._current(provider)
        if usage.cost_usd >= budget:
            logger.info(
                "provider_budget_exhausted",
                provider=provider,
                spent=round(usage.cost_usd, 4),
                budget=budget,
            )
            return False
        return True

    def record(self, provider: str, response: AnswerResponse) -> None:
        usage = self._current(provider)
        usage.requests += 1
        usage.tokens += response.tokens_in + response.tokens_out
        usage.cost_usd += response.cost

    def remaining(self, provider: str) -> float | None:
        """Budget left today, or None when the provider is unbudgeted."""
        budget = self.daily_budgets.get(provider)
        if budget is None:
            return None
        return max(0.0, budget - self._current(provider).cost_usd)

    def spent_today(self) -> float:
        """Total USD recorded across providers for the current UTC day."""
        return sum(self._current(name).cost_usd for name in list(self._usage))

    def usage(self) -> dict[str, dict]:
        return {name: self._current(name).to_dict() for name in self._usage}

    @classmethod
    def from_settings(
        cls, settings: Settings, clock: Callable[[], datetime] = utc_now
    ) -> "ProviderBudget":
        """Build budgets from each enabled provider's `daily_budget`."""
        budgets = {
            name: settings.provider_settings(name).daily_budget
            for name in settings.enabled_providers()
        }
        return cls(daily_budgets=budgets, clock=clock)
