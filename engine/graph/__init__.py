"""Entity resolution and citation knowledge graph.

Use explicit imports:
    from engine.graph.store import InMemoryGraphStore
    from engine.graph.knowledge_graph import KnowledgeGraph
    from engine.graph.ingest import ingest_probe_results
"""
