from django.urls import path

from analytics.views import (
    BookingsByStatusView,
    CustomerInsightsView,
    OverviewView,
    RevenueView,
    ServicePerformanceView,
)

urlpatterns = [
    path("analytics/overview/", OverviewView.as_view(), name="analytics-overview"),
    path("analytics/revenue/", RevenueView.as_view(), name="analytics-revenue"),
    path("analytics/bookings-by-status/", BookingsByStatusView.as_view(), name="analytics-bookings-by-status"),
    path("analytics/service-performance/", ServicePerformanceView.as_view(), name="analytics-service-performance"),
    path("analytics/customer-insights/", CustomerInsightsView.as_view(), name="analytics-customer-insights"),
]
