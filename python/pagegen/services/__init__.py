"""Business logic services.

Services hold the generation pipeline: queue, orchestrator, per-block
generation, validation, cost tracking and image handling. Route handlers
and Celery tasks only wire them together.
"""
