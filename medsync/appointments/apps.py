from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class AppointmentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "medsync.appointments"
    verbose_name = _("Appointments")

    def ready(self):
        import medsync.appointments.signals  # noqa: F401, PLC0415
