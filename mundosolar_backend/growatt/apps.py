from django.apps import AppConfig


class GrowattConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "growatt"
    verbose_name = "Growatt monitoring"
