from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """AppConfig for the payments app.

    Importing the gateways package on ready registers the built-in adapters.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    def ready(self):
        from payments import gateways  # noqa: F401
