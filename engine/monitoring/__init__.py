"""Batch probing and recurring schedules.

Use explicit imports:
    from engine.monitoring.batch_runner import BatchRunner, ProbeSpec
    from engine.monitoring.scheduler import ProbeScheduler, calculate_next_run
"""
