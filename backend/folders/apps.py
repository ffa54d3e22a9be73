from django.apps import AppConfig


class FoldersConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'backend.folders'

    def ready(self):
        """Import signals when app is ready"""
        import backend.folders.signals  # noqa: F401
