from django.apps import AppConfig


class CoreConfig(AppConfig):
    """Shared configuration, fetch layer and the local HTTP bridge."""

    name = "apps.core"
    verbose_name = "Core"
