from django.conf import settings
from rest_framework.routers import DefaultRouter
from rest_framework.routers import SimpleRouter

from medsync.appointments.api.views import AppointmentViewSet
from medsync.conversations.api.views import ConversationViewSet
from medsync.notifications.api.views import NotificationViewSet

router = DefaultRouter() if settings.DEBUG else SimpleRouter()

router.register("appointments", AppointmentViewSet, basename="appointments")
router.register("conversations", ConversationViewSet, basename="conversations")
router.register("notifications", NotificationViewSet, basename="notifications")


app_name = "api"
urlpatterns = router.urls
