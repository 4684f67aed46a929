from django.contrib import admin

from medsync.appointments import models


@admin.register(models.Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ["id", "patient", "doctor", "date", "time", "status"]
    search_fields = ["reason", "notes", "patient__email", "doctor__email"]
    list_filter = ["status", "reschedule_requested", "date"]
