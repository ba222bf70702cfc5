"""Answer-engine providers and probe fan-out.

Use explicit imports:
    from engine.observation.providers import AnswerProvider, ProviderRegistry
    from engine.observation.models import AnswerResponse, AskOptions
    from engine.observation.orchestrator import ProbeOrchestrator
"""
