"""API routers."""

from clinical_coding.api.routes import audit, dead_letters, episodes, exports, health, queries, webhooks

__all__ = ["audit", "dead_letters", "episodes", "exports", "health", "queries", "webhooks"]
