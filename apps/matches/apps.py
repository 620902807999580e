from django.apps import AppConfig


class MatchesConfig(AppConfig):
    """Match caches, request budget and the enrichment orchestrator."""

    name = "apps.matches"
    verbose_name = "Matches"
