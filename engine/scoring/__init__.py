"""Citability scoring: structural heuristics, citation validation and competitive gap.

Use explicit imports:
    from engine.scoring.query_extractor import extract_queries
    from engine.scoring.structural import calculate_structural_score
    from engine.scoring.composite import CompositeScorer
"""
