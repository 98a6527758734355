from django.apps import AppConfig


class SecretSantaConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.secret_santa'
    label = 'secret_santa'
    verbose_name = 'Secret Santa'
