from rest_framework.routers import DefaultRouter

from bookings.views import BookingViewSet, ServiceViewSet

router = DefaultRouter()
router.register("services", ServiceViewSet, basename="service")
router.register("bookings", BookingViewSet, basename="booking")

urlpatterns = router.urls
