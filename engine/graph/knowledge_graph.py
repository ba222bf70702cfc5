"""
Citation knowledge graph.

Tracks which canonical entities get cited, by which provider, for which
query, and how observed names map onto canonical entities.

    (Alias)-[:ALIAS_OF {source}]->(Entity)
    (Entity)-[:CITED_IN]->(Citation)
    (Citation)-[:FROM_PROVIDER]->(Provider)
    (Citation)-[:FOR_QUERY]->(Query)
    (Entity)-[:COMPETES_WITH {category}]->(Entity)
"""

import asyncio
import re
import uuid
from collections import Counter, defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum

import structlog

from api.config import AmbiguityPolicy
from api.exceptions import EntityResolutionError, NotFoundError, ValidationError
from engine.graph.store import GraphStore, NodeRef
from engine.observation.models import utc_now

logger = structlog.get_logger(__name__)

PROVIDER_SEARCH_BACKENDS: dict[str, str | None] = {
    "openai": "Bing",
    "anthropic": "Brave",
    "google": "Google Search",
    "perplexity": "Multi-index",
    "mock": None,
}

SENTIMENT_VALUES = {"positive": 1.0, "neutral": 0.0, "negative": -1.0}


class EntityType(StrEnum):
    BRAND = "brand"
    PRODUCT = "product"
    FEATURE = "feature"
    CATEGORY = "category"


class MatchKind(StrEnum):
    """How an observed name was resolved."""

    EXACT = "exact"
    ALIAS = "alias"
    CONTAINMENT = "containment"
    CREATED = "created"


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _percent(count: int, total: int) -> int:
    return round(count / total * 100) if total else 0


@dataclass
class Entity:
    """A canonical entity."""

    id: str
    canonical_name: str
    type: EntityType = EntityType.BRAND
    domain: str | None = None

    @classmethod
    def from_node(cls, node: dict) -> "Entity":
        return cls(
            id=node["id"],
            canonical_name=node["canonical_name"],
            type=EntityType(node.get("type") or EntityType.BRAND),
            domain=node.get("domain"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "canonical_name": self.canonical_name,
            "type": self.type.value,
            "domain": self.domain,
        }


@dataclass
class Resolution:
    entity: Entity
    matched_by: MatchKind
    alias_created: bool = False


@dataclass
class CitationEvent:
    """One observation of an entity (cited or not) in one provider response."""

    entity_name: str
    provider: str
    query: str
    cited: bool
    query_category: str | None = None
    citation_type: str | None = None
    sentiment: str | None = None
    position: int | None = None
    confidence: float = 0.0
    entity_type: EntityType = EntityType.BRAND
    entity_domain: str | None = None
    timestamp: datetime | None = None
    # Batch run the observation belongs to
    run_id: str | None = None
    # Declared brand or competitor: matched by exact name or alias only
    canonical: bool = False


@dataclass
class CitationPath:
    entity: str
    observed_name: str
    provider: str
    query: str
    cited: bool
    sentiment: str | None
    position: int | None
    confidence: float
    timestamp: str
    run_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "entity": self.entity,
            "observed_name": self.observed_name,
            "provider": self.provider,
            "query": self.query,
            "cited": self.cited,
            "sentiment": self.sentiment,
            "position": self.position,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
            "run_id": self.run_id,
        }


@dataclass
class ProviderBreakdown:
    """Which search backend surfaces an entity most."""

    provider: str
    search_backend: str | None
    total_probes: int
    cited: int
    citation_rate: int  # Percent

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "search_backend": self.search_backend,
            "total_probes": self.total_probes,
            "cited": self.cited,
            "citation_rate": self.citation_rate,
        }


@dataclass
class TrajectoryPoint:
    date: str
    total: int
    cited: int
    citation_rate: int
    avg_sentiment: float | None
    avg_position: float | None

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "total": self.total,
            "cited": self.cited,
            "citation_rate": self.citation_rate,
            "avg_sentiment": self.avg_sentiment,
            "avg_position": self.avg_position,
        }


@dataclass
class ProviderTrajectory:
    provider: str
    points: list[TrajectoryPoint] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"provider": self.provider, "points": [p.to_dict() for p in self.points]}


@dataclass
class EntityVariant:
    variant: str
    provider: str
    frequency: int

    def to_dict(self) -> dict:
        return {"variant": self.variant, "provider": self.provider, "frequency": self.frequency}


@dataclass
class CompetitiveEdge:
    brand: str
    competitor: str
    category: str | None
    brand_citations: int
    competitor_citations: int

    def to_dict(self) -> dict:
        return {
            "brand": self.brand,
            "competitor": self.competitor,
            "category": self.category,
            "brand_citations": self.brand_citations,
            "competitor_citations": self.competitor_citations,
        }


@dataclass
class GraphStats:
    entities: int = 0
    aliases: int = 0
    citations: int = 0
    queries: int = 0
    providers: int = 0
    competition_edges: int = 0

    def to_dict(self) -> dict:
        return {
            "entities": self.entities,
            "aliases": self.aliases,
            "citations": self.citations,
            "queries": self.queries,
            "providers": self.providers,
            "competition_edges": self.competition_edges,
        }


class KnowledgeGraph:
    """Entity resolution and citation analytics over a GraphStore."""

    def __init__(
        self,
        store: GraphStore,
        ambiguity_policy: AmbiguityPolicy = AmbiguityPolicy.LONGEST_MATCH,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ambiguity_policy = ambiguity_policy
        self.clock = clock
        self._resolve_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Seed provider nodes with their search backends. Idempotent."""
        for name, backend in PROVIDER_SEARCH_BACKENDS.items():
            await self.store.merge_node("Provider", name, {"search_backend": backend})
        logger.info("knowledge_graph_initialized", providers=len(PROVIDER_SEARCH_BACKENDS))

    async def close(self) -> None:
        await self.store.close()

    # Resolution

    async def _entities(self) -> list[Entity]:
        return [Entity.from_node(n) for n in await self.store.find_nodes("Entity")]

    async def find_entity(self, name: str, containment: bool = True) -> Resolution | None:
        """
        Resolve a name without creating anything.

        Exact canonical names win, then recorded aliases. With ``containment``
        a name containing (or contained in) a canonical name also matches.
        """
        observed = name.strip().lower()
        if not observed:
            return None
        entities = await self._entities()

        for entity in entities:
            if entity.canonical_name.lower() == observed:
                return Resolution(entity, MatchKind.EXACT)

        for edge in await self.store.edges("ALIAS_OF", source=NodeRef("Alias", observed)):
            node = await self.store.get_node("Entity", edge.target.key)
            if node is not None:
                return Resolution(Entity.from_node(node), MatchKind.ALIAS)

        if not containment:
            return None
        candidates = [
            entity
            for entity in entities
            if entity.canonical_name.lower() in observed
            or observed in entity.canonical_name.lower()
        ]
        if not candidates:
            return None
        if len(candidates) > 1:
            if self.ambiguity_policy == AmbiguityPolicy.REQUIRE_CONFIRMATION:
                raise EntityResolutionError(name, sorted(c.canonical_name for c in candidates))
            candidates.sort(key=lambda e: (-len(e.canonical_name), e.id))
            logger.info(
                "ambiguous_resolution",
                name=name,
                chosen=candidates[0].canonical_name,
                candidates=len(candidates),
            )
        return Resolution(candidates[0], MatchKind.CONTAINMENT)

    async def get_entity(self, name: str) -> Entity:
        """Look up an entity by canonical name or alias. Raises NotFoundError."""
        resolution = await self.find_entity(name, containment=False)
        if resolution is None:
            raise NotFoundError("Entity", name)
        return resolution.entity

    async def resolve_entity(
        self,
        name: str,
        source: str = "unknown",
        entity_type: EntityType = EntityType.BRAND,
        domain: str | None = None,
        canonical: bool = False,
    ) -> Resolution:
        """
        Resolve an observed name to a canonical entity, creating it if unknown.

        A match under a different literal records an alias attributed to
        ``source`` unless that alias already exists. ``canonical`` names are
        declared entities: they skip containment matching, so "Dropbox" never
        folds into an existing "Box".
        """
        name = name.strip()
        if not name:
            raise ValidationError("Entity name must not be empty", field="name")
        async with self._resolve_lock:
            resolution = await self.find_entity(name, containment=not canonical)
            if resolution is None:
                entity = await self._create_entity(name, entity_type, domain)
                logger.info("entity_created", entity_id=entity.id, name=name, source=source)
                return Resolution(entity, MatchKind.CREATED)

            entity = resolution.entity
            if domain and not entity.domain:
                await self.store.merge_node("Entity", entity.id, {"domain": domain})
                entity.domain = domain

            if name.lower() != entity.canonical_name.lower():
                resolution.alias_created = await self._add_alias(name, entity, source)
            return resolution

    async def _create_entity(
        self, name: str, entity_type: EntityType, domain: str | None
    ) -> Entity:
        base = f"entity-{slugify(name) or uuid.uuid4().hex[:8]}"
        entity_id = base
        suffix = 2
        while await self.store.get_node("Entity", entity_id) is not None:
            entity_id = f"{base}-{suffix}"
            suffix += 1

        entity = Entity(entity_id, name, entity_type, domain)
        await self.store.create_node(
            "Entity",
            entity_id,
            {
                "canonical_name": name,
                "type": entity_type.value,
                "domain": domain,
                "created_at": self.clock().isoformat(),
            },
        )
        return entity

    async def _add_alias(self, name: str, entity: Entity, source: str) -> bool:
        key = name.lower()
        alias = NodeRef("Alias", key)
        if await self.store.get_node("Alias", key) is not None:
            return False
        await self.store.create_node("Alias", key, {"display_name": name})
        await self.store.create_edge(
            "ALIAS_OF", alias, NodeRef("Entity", entity.id), {"source": source}
        )
        logger.info("alias_created", alias=name, entity_id=entity.id, source=source)
        return True

    # Ingestion

    async def record_citation(self, event: CitationEvent) -> str:
        """Record one citation event. Returns the new Citation node id."""
        resolution = await self.resolve_entity(
            event.entity_name,
            event.provider,
            event.entity_type,
            event.entity_domain,
            canonical=event.canonical,
        )
        if await self.store.get_node("Provider", event.provider) is None:
            await self.store.merge_node(
                "Provider",
                event.provider,
                {"search_backend": PROVIDER_SEARCH_BACKENDS.get(event.provider)},
            )
        query_props = {"category": event.query_category} if event.query_category else {}
        await self.store.merge_node("Query", event.query, query_props)

        citation_id = f"citation-{uuid.uuid4().hex}"
        timestamp = event.timestamp or self.clock()
        await self.store.create_node(
            "Citation",
            citation_id,
            {
                "cited": event.cited,
                "citation_type": event.citation_type,
                "sentiment": event.sentiment,
                "position": event.position,
                "confidence": event.confidence,
                "observed_name": event.entity_name,
                "timestamp": timestamp.isoformat(),
                "run_id": event.run_id,
            },
        )
        citation = NodeRef("Citation", citation_id)
        await self.store.create_edge("CITED_IN", NodeRef("Entity", resolution.entity.id), citation)
        await self.store.create_edge("FROM_PROVIDER", citation, NodeRef("Provider", event.provider))
        await self.store.create_edge("FOR_QUERY", citation, NodeRef("Query", event.query))
        return citation_id

    async def record_competition(
        self, brand_name: str, competitor_name: str, category: str | None = None
    ) -> bool:
        """Link two declared entities. Returns True if the edge is new."""
        brand = (await self.resolve_entity(brand_name, canonical=True)).entity
        competitor = (await self.resolve_entity(competitor_name, canonical=True)).entity
        if brand.id == competitor.id:
            return False
        props = {"category": category} if category else {}
        return await self.store.merge_edge(
            "COMPETES_WITH", NodeRef("Entity", brand.id), NodeRef("Entity", competitor.id), props
        )

    # Analytics

    async def _citations(self, entity: Entity) -> list[dict]:
        """Citation nodes for an entity, each with provider and query attached."""
        rows = []
        for edge in await self.store.edges("CITED_IN", source=NodeRef("Entity", entity.id)):
            node = await self.store.get_node("Citation", edge.target.key)
            if node is None:
                continue
            ref = NodeRef("Citation", node["id"])
            providers = await self.store.edges("FROM_PROVIDER", source=ref)
            queries = await self.store.edges("FOR_QUERY", source=ref)
            node["provider"] = providers[0].target.key if providers else "unknown"
            node["query"] = queries[0].target.key if queries else ""
            rows.append(node)
        return rows

    async def citation_paths(self, name: str) -> list[CitationPath]:
        """Every citation event for an entity, newest first."""
        entity = await self.get_entity(name)
        rows = sorted(await self._citations(entity), key=lambda r: r["timestamp"], reverse=True)
        return [
            CitationPath(
                entity=entity.canonical_name,
                observed_name=row.get("observed_name") or entity.canonical_name,
                provider=row["provider"],
                query=row["query"],
                cited=bool(row.get("cited")),
                sentiment=row.get("sentiment"),
                position=row.get("position"),
                confidence=row.get("confidence") or 0.0,
                timestamp=row["timestamp"],
                run_id=row.get("run_id"),
            )
            for row in rows
        ]

    async def provider_breakdown(self, name: str) -> list[ProviderBreakdown]:
        """Citation rate per provider, most citations first."""
        entity = await self.get_entity(name)
        totals: Counter[str] = Counter()
        cited: Counter[str] = Counter()
        for row in await self._citations(entity):
            totals[row["provider"]] += 1
            if row.get("cited"):
                cited[row["provider"]] += 1

        breakdown = []
        for provider, total in totals.items():
            node = await self.store.get_node("Provider", provider) or {}
            breakdown.append(
                ProviderBreakdown(
                    provider=provider,
                    search_backend=node.get("search_backend"),
                    total_probes=total,
                    cited=cited[provider],
                    citation_rate=_percent(cited[provider], total),
                )
            )
        breakdown.sort(key=lambda b: (-b.cited, b.provider))
        return breakdown

    async def citation_trajectory(
        self, name: str, days: int = 30, now: datetime | None = None
    ) -> list[ProviderTrajectory]:
        """Daily citation stats per provider over the trailing window."""
        entity = await self.get_entity(name)
        cutoff = (now or self.clock()) - timedelta(days=days)

        buckets: dict[str, dict[str, list[dict]]] = defaultdict(lambda: defaultdict(list))
        for row in await self._citations(entity):
            if datetime.fromisoformat(row["timestamp"]) < cutoff:
                continue
            buckets[row["provider"]][row["timestamp"][:10]].append(row)

        trajectories = []
        for provider in sorted(buckets):
            points = []
            for date in sorted(buckets[provider]):
                rows = buckets[provider][date]
                cited_rows = [r for r in rows if r.get("cited")]
                sentiments = [
                    SENTIMENT_VALUES[r["sentiment"]]
                    for r in cited_rows
                    if r.get("sentiment") in SENTIMENT_VALUES
                ]
                positions = [r["position"] for r in cited_rows if r.get("position") is not None]
                points.append(
                    TrajectoryPoint(
                        date=date,
                        total=len(rows),
                        cited=len(cited_rows),
                        citation_rate=_percent(len(cited_rows), len(rows)),
                        avg_sentiment=(
                            round(sum(sentiments) / len(sentiments), 2) if sentiments else None
                        ),
                        avg_position=(
                            round(sum(positions) / len(positions), 1) if positions else None
                        ),
                    )
                )
            trajectories.append(ProviderTrajectory(provider, points))
        return trajectories

    async def entity_aliases(self, name: str) -> list[EntityVariant]:
        """Aliases of an entity with the provider that introduced them."""
        entity = await self.get_entity(name)
        observed = Counter(
            (row.get("observed_name") or "").lower() for row in await self._citations(entity)
        )

        variants = []
        for edge in await self.store.edges("ALIAS_OF", target=NodeRef("Entity", entity.id)):
            node = await self.store.get_node("Alias", edge.source.key) or {}
            variants.append(
                EntityVariant(
                    variant=node.get("display_name") or edge.source.key,
                    provider=edge.properties.get("source", "unknown"),
                    frequency=observed[edge.source.key],
                )
            )
        variants.sort(key=lambda v: (-v.frequency, v.variant))
        return variants

    async def _cited_count(self, entity_id: str, cache: dict[str, int]) -> int:
        if entity_id not in cache:
            node = await self.store.get_node("Entity", entity_id)
            rows = await self._citations(Entity.from_node(node)) if node else []
            cache[entity_id] = sum(1 for r in rows if r.get("cited"))
        return cache[entity_id]

    async def competitive_edges(self) -> list[CompetitiveEdge]:
        """Every brand/competitor pair with cited counts on each side."""
        cache: dict[str, int] = {}
        names: dict[str, str] = {}
        for node in await self.store.find_nodes("Entity"):
            names[node["id"]] = node["canonical_name"]

        result = []
        for edge in await self.store.edges("COMPETES_WITH"):
            result.append(
                CompetitiveEdge(
                    brand=names.get(edge.source.key, edge.source.key),
                    competitor=names.get(edge.target.key, edge.target.key),
                    category=edge.properties.get("category"),
                    brand_citations=await self._cited_count(edge.source.key, cache),
                    competitor_citations=await self._cited_count(edge.target.key, cache),
                )
            )
        result.sort(key=lambda e: (e.brand, -e.competitor_citations, e.competitor))
        return result

    async def stats(self) -> GraphStats:
        return GraphStats(
            entities=await self.store.count_nodes("Entity"),
            aliases=await self.store.count_nodes("Alias"),
            citations=await self.store.count_nodes("Citation"),
            queries=await self.store.count_nodes("Query"),
            providers=await self.store.count_nodes("Provider"),
            competition_edges=await self.store.count_edges("COMPETES_WITH"),
        )
