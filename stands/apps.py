from django.apps import AppConfig


class StandsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "stands"
