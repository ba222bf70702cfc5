"""Alert rules evaluated against the citation history in the knowledge graph.

Checks run for one brand:
- citation-lost: cited in an earlier run, then missed N consecutive runs
- citation-gained: cited in the latest run after a miss in the run before
- competitor-surge: a competitor's citation rate rose N points week over week
- sentiment-drop: N% or more of last week's brand citations were negative
- cost-spike: provider spend today reached N USD

The same alert (brand, type and subject) is raised at most once a day.
"""

import uuid
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

import structlog

from api.config import AlertSettings
from api.exceptions import NotFoundError
from engine.graph.knowledge_graph import CitationPath, KnowledgeGraph

logger = structlog.get_logger(__name__)

WINDOW_DAYS = 7
DEDUPE_WINDOW = timedelta(days=1)


class AlertType(StrEnum):
    CITATION_GAINED = "citation-gained"
    CITATION_LOST = "citation-lost"
    COMPETITOR_SURGE = "competitor-surge"
    SENTIMENT_DROP = "sentiment-drop"
    COST_SPIKE = "cost-spike"


@dataclass
class Alert:
    """One raised alert."""

    brand: str
    type: AlertType
    message: str
    subject: str | None = None  # Query or competitor the alert is about
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    is_read: bool = False
    id: str = field(default_factory=lambda: f"alert-{uuid.uuid4().hex[:12]}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "brand": self.brand,
            "type": self.type.value,
            "message": self.message,
            "subject": self.subject,
            "data": self.data,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "is_read": self.is_read,
        }


def _at(path: CitationPath) -> datetime:
    return datetime.fromisoformat(path.timestamp)


def group_runs(paths: Sequence[CitationPath]) -> list[list[CitationPath]]:
    """Group events into runs, newest run first. Events without a run id stand alone."""
    runs: dict[str, list[CitationPath]] = defaultdict(list)
    for path in paths:
        runs[path.run_id or path.timestamp].append(path)
    return sorted(runs.values(), key=lambda run: max(p.timestamp for p in run), reverse=True)


def _by_query(paths: Sequence[CitationPath]) -> dict[str, list[CitationPath]]:
    grouped: dict[str, list[CitationPath]] = defaultdict(list)
    for path in paths:
        grouped[path.query].append(path)
    return dict(sorted(grouped.items()))


def _cited(run: Sequence[CitationPath]) -> bool:
    return any(p.cited for p in run)


def check_citation_lost(brand: str, paths: Sequence[CitationPath], threshold: int) -> list[Alert]:
    """Queries cited before the last `threshold` runs and missed in all of them."""
    alerts = []
    for query, events in _by_query(paths).items():
        runs = group_runs(events)
        if len(runs) < threshold + 1:
            continue
        if not _cited(runs[threshold]) or any(_cited(run) for run in runs[:threshold]):
            continue
        alerts.append(
            Alert(
                brand=brand,
                type=AlertType.CITATION_LOST,
                message=(
                    f'Citation lost for "{query}": not cited in the last '
                    f"{threshold} consecutive runs."
                ),
                subject=query,
                data={"query": query, "consecutive_misses": threshold},
            )
        )
    return alerts


def check_citation_gained(brand: str, paths: Sequence[CitationPath]) -> list[Alert]:
    """Queries cited in the latest run but not in the one before."""
    alerts = []
    for query, events in _by_query(paths).items():
        runs = group_runs(events)
        if len(runs) < 2:
            continue
        latest, previous = runs[0], runs[1]
        if _cited(latest) and not _cited(previous):
            alerts.append(
                Alert(
                    brand=brand,
                    type=AlertType.CITATION_GAINED,
                    message=f'New citation detected for "{query}".',
                    subject=query,
                    data={"query": query},
                )
            )
    return alerts


def check_competitor_surge(
    brand: str,
    competitor_paths: Mapping[str, Sequence[CitationPath]],
    now: datetime,
    threshold: float,
) -> list[Alert]:
    """
    Compare each competitor's citation rate over the last 7 days with the 7 before.

    Competitors never cited in the earlier week are skipped.
    """
    recent_start = now - timedelta(days=WINDOW_DAYS)
    previous_start = now - timedelta(days=2 * WINDOW_DAYS)

    alerts = []
    for name in sorted(competitor_paths):
        events = competitor_paths[name]
        recent = [p for p in events if _at(p) >= recent_start]
        previous = [p for p in events if previous_start <= _at(p) < recent_start]
        previous_cited = sum(1 for p in previous if p.cited)
        if not recent or previous_cited == 0:
            continue

        recent_rate = sum(1 for p in recent if p.cited) / len(recent) * 100
        previous_rate = previous_cited / len(previous) * 100
        increase = recent_rate - previous_rate
        if increase < threshold:
            continue
        alerts.append(
            Alert(
                brand=brand,
                type=AlertType.COMPETITOR_SURGE,
                message=(
                    f'Competitor "{name}" citation rate increased by {increase:.1f} '
                    f"points over the last {WINDOW_DAYS} days."
                ),
                subject=name,
                data={
                    "competitor": name,
                    "recent_rate": round(recent_rate, 1),
                    "previous_rate": round(previous_rate, 1),
                    "increase": round(increase, 1),
                },
            )
        )
    return alerts


def check_sentiment_drop(
    brand: str, paths: Sequence[CitationPath], now: datetime, threshold: float
) -> list[Alert]:
    """Share of negative brand citations over the last 7 days."""
    start = now - timedelta(days=WINDOW_DAYS)
    cited = [p for p in paths if p.cited and _at(p) >= start]
    if not cited:
        return []

    negative = sum(1 for p in cited if p.sentiment == "negative")
    negative_percent = negative / len(cited) * 100
    if negative_percent < threshold:
        return []
    return [
        Alert(
            brand=brand,
            type=AlertType.SENTIMENT_DROP,
            message=(
                f"Negative sentiment at {negative_percent:.1f}% over the last "
                f"{WINDOW_DAYS} days (threshold: {threshold:g}%)."
            ),
            data={
                "negative_percent": round(negative_percent, 1),
                "total_citations": len(cited),
                "negative_count": negative,
            },
        )
    ]


def check_cost_spike(brand: str, cost_today: float, threshold: float) -> list[Alert]:
    if cost_today < threshold:
        return []
    return [
        Alert(
            brand=brand,
            type=AlertType.COST_SPIKE,
            message=f"Daily API cost has reached ${cost_today:.2f} (threshold: ${threshold:g}).",
            data={"total_cost": round(cost_today, 2), "threshold": threshold},
        )
    ]


class AlertLog:
    """Raised alerts, kept in memory in the order they were raised."""

    def __init__(self) -> None:
        self._alerts: list[Alert] = []

    def add(self, alert: Alert) -> None:
        self._alerts.append(alert)

    def exists_since(
        self, brand: str, alert_type: AlertType, subject: str | None, since: datetime
    ) -> bool:
        return any(
            a.brand == brand
            and a.type == alert_type
            and a.subject == subject
            and a.created_at is not None
            and a.created_at >= since
            for a in self._alerts
        )

    def list(
        self, brand: str | None = None, unread_only: bool = False, limit: int = 50
    ) -> list[Alert]:
        """Alerts newest first."""
        alerts = [
            a
            for a in reversed(self._alerts)
            if (brand is None or a.brand == brand) and not (unread_only and a.is_read)
        ]
        return alerts[:limit]

    def get(self, alert_id: str) -> Alert:
        for alert in self._alerts:
            if alert.id == alert_id:
                return alert
        raise NotFoundError("Alert", alert_id)

    def mark_read(self, alert_id: str, is_read: bool = True) -> Alert:
        alert = self.get(alert_id)
        alert.is_read = is_read
        return alert

    def delete(self, alert_id: str) -> None:
        self._alerts.remove(self.get(alert_id))

    def mark_all_read(self, brand: str | None = None) -> int:
        """Mark alerts read. Returns how many were unread."""
        count = 0
        for alert in self._alerts:
            if not alert.is_read and (brand is None or alert.brand == brand):
                alert.is_read = True
                count += 1
        return count


class AlertEngine:
    """Runs the alert checks for a brand against the knowledge graph."""

    def __init__(
        self,
        graph: KnowledgeGraph,
        settings: AlertSettings | None = None,
        log: AlertLog | None = None,
    ):
        self.graph = graph
        self.settings = settings or AlertSettings()
        self.log = log or AlertLog()

    async def run_checks(self, brand: str, cost_today: float = 0.0) -> list[Alert]:
        """
        Run every check for a brand and log the alerts not raised in the last day.

        Args:
            brand: Canonical name or alias of the brand
            cost_today: Provider spend so far today, in USD

        Returns:
            The newly raised alerts

        Raises:
            NotFoundError: if the brand is not in the graph
        """
        if not self.settings.enabled:
            return []

        entity = await self.graph.get_entity(brand)
        name = entity.canonical_name
        now = self.graph.clock()
        paths = await self.graph.citation_paths(name)

        competitor_paths: dict[str, list[CitationPath]] = {}
        for edge in await self.graph.competitive_edges():
            if edge.brand == name and edge.competitor not in competitor_paths:
                competitor_paths[edge.competitor] = await self.graph.citation_paths(
                    edge.competitor
                )

        candidates = [
            *check_citation_lost(name, paths, self.settings.citation_lost_threshold),
            *check_citation_gained(name, paths),
            *check_competitor_surge(
                name, competitor_paths, now, self.settings.competitor_surge_threshold
            ),
            *check_sentiment_drop(name, paths, now, self.settings.sentiment_drop_threshold),
            *check_cost_spike(name, cost_today, self.settings.cost_spike_threshold),
        ]

        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        raised = []
        for alert in candidates:
            since = start_of_day if alert.type == AlertType.COST_SPIKE else now - DEDUPE_WINDOW
            if self.log.exists_since(name, alert.type, alert.subject, since):
                continue
            alert.created_at = now
            self.log.add(alert)
            raised.append(alert)
            logger.info(
                "alert_raised", brand=name, alert_type=alert.type.value, subject=alert.subject
            )

        logger.info("alert_checks_completed", brand=name, raised=len(raised))
        return raised
