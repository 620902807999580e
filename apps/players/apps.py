from django.apps import AppConfig


class PlayersConfig(AppConfig):
    """Player statistics, tags, relations and party detection."""

    name = "apps.players"
    verbose_name = "Players"
