"""Citation intelligence engine.

Probes answer engines with questions about a brand, detects brand and
competitor citations in the answers, scores content citability and keeps
a knowledge graph of who gets cited where.

Use explicit imports:
    from engine.observation.orchestrator import ProbeOrchestrator
    from engine.scoring.composite import CompositeScorer
    from engine.competitive.analysis import CompetitiveAnalyzer
    from engine.graph.knowledge_graph import KnowledgeGraph
"""
