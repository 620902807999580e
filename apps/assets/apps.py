from django.apps import AppConfig


class AssetsConfig(AppConfig):
    """Assets catalog client (heroes, ranks, items)."""

    name = "apps.assets"
    verbose_name = "Assets"
