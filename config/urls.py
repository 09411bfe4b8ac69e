from django.urls import include, path

urlpatterns = [
    path("api/v1/", include("core.urls")),
    path("api/v1/", include("customers.urls")),
    path("api/v1/", include("bookings.urls")),
    path("api/v1/", include("billing.urls")),
    path("api/v1/", include("analytics.urls")),
]
