from django.apps import AppConfig


class RecordsAppConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "records_app"
