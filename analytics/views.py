from datetime import datetime, time, timedelta, timezone as dt_timezone
from decimal import Decimal

from django.core.cache import cache
from django.db.models import Count, Sum
from django.db.models.functions import Coalesce, TruncDate
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.models import Invoice, Payment
from bookings.models import Booking
from common.permissions import RoleCapabilityPermission, get_request_studio_id
from customers.models import Customer

DEFAULT_RANGE_DAYS = 30
MAX_RANGE_DAYS = 366
ZERO = Decimal("0.00")
MONEY_QUANT = Decimal("0.01")


def _money(value):
    return (value or ZERO).quantize(MONEY_QUANT)


class BaseAnalyticsView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "analytics.view"}
    cache_timeout = 60
    cache_key = None

    def _parse_date_param(self, request, name):
        raw = request.query_params.get(name)
        if not raw:
            return None
        try:
            value = parse_date(raw)
        except ValueError:
            value = None
        if value is None:
            raise ValidationError({name: "Must be a valid ISO date (YYYY-MM-DD)."})
        return value

    def _date_range(self, request):
        end_date = self._parse_date_param(request, "endDate") or timezone.now().date()
        start_date = self._parse_date_param(request, "startDate")
        if start_date is None:
            try:
                start_date = end_date - timedelta(days=DEFAULT_RANGE_DAYS)
            except OverflowError:
                raise ValidationError({"endDate": "endDate is too early for the default range."})
        if start_date > end_date:
            raise ValidationError({"startDate": "startDate must be before or equal to endDate."})
        if (end_date - start_date).days > MAX_RANGE_DAYS:
            raise ValidationError({"startDate": f"Date range cannot exceed {MAX_RANGE_DAYS} days."})
        return start_date, end_date

    def _bounds(self, start_date, end_date):
        start = datetime.combine(start_date, time.min).replace(tzinfo=dt_timezone.utc)
        end = datetime.combine(end_date, time.max).replace(tzinfo=dt_timezone.utc)
        return start, end

    def _cached(self, studio_id, request, callback):
        cache_key = f"analytics:{self.cache_key}:{studio_id}:{request.get_full_path()}"
        payload = cache.get(cache_key)
        if payload is None:
            payload = callback()
            cache.set(cache_key, payload, self.cache_timeout)
        return payload

    def get(self, request):
        studio_id = get_request_studio_id(request)
        start_date, end_date = self._date_range(request)
        payload = self._cached(studio_id, request, lambda: self.compute(studio_id, start_date, end_date))
        return Response(payload)

    def compute(self, studio_id, start_date, end_date):
        raise NotImplementedError


def _payments_in_range(studio_id, start, end):
    return Payment.objects.filter(invoice__studio_id=studio_id, paid_at__gte=start, paid_at__lte=end)


def _bookings_in_range(studio_id, start, end):
    return Booking.objects.filter(studio_id=studio_id, created_at__gte=start, created_at__lte=end)


class OverviewView(BaseAnalyticsView):
    cache_key = "overview"

    def compute(self, studio_id, start_date, end_date):
        start, end = self._bounds(start_date, end_date)
        bookings = _bookings_in_range(studio_id, start, end)
        revenue = _payments_in_range(studio_id, start, end).aggregate(total=Sum("amount"))["total"]
        return {
            "total_bookings": bookings.count(),
            "total_revenue": _money(revenue),
            "pending_invoices": Invoice.objects.filter(
                studio_id=studio_id,
                status=Invoice.Status.SENT,
                created_at__gte=start,
                created_at__lte=end,
            ).count(),
            "completed_bookings": bookings.filter(status=Booking.Status.COMPLETED).count(),
        }


class RevenueView(BaseAnalyticsView):
    """Daily payment totals, one row per day of the range including empty days."""

    cache_key = "revenue"

    def compute(self, studio_id, start_date, end_date):
        start, end = self._bounds(start_date, end_date)
        rows = (
            _payments_in_range(studio_id, start, end)
            .annotate(day=TruncDate("paid_at", tzinfo=dt_timezone.utc))
            .values("day")
            .annotate(revenue=Coalesce(Sum("amount"), ZERO))
        )
        revenue_by_day = {row["day"]: row["revenue"] for row in rows}

        series = []
        day = start_date
        while day <= end_date:
            series.append({"date": day.isoformat(), "revenue": _money(revenue_by_day.get(day))})
            day += timedelta(days=1)
        return series


class BookingsByStatusView(BaseAnalyticsView):
    cache_key = "bookings-by-status"

    def compute(self, studio_id, start_date, end_date):
        start, end = self._bounds(start_date, end_date)
        rows = _bookings_in_range(studio_id, start, end).values("status").annotate(count=Count("id")).order_by("status")
        return [{"status": row["status"], "count": row["count"]} for row in rows]


class ServicePerformanceView(BaseAnalyticsView):
    cache_key = "service-performance"

    def compute(self, studio_id, start_date, end_date):
        start, end = self._bounds(start_date, end_date)
        bookings = _bookings_in_range(studio_id, start, end)

        booking_rows = bookings.values("service_id", "service__name").annotate(bookings=Count("id")).order_by("service__name")
        revenue_rows = (
            Payment.objects.filter(invoice__studio_id=studio_id, invoice__booking__in=bookings)
            .values("invoice__booking__service_id")
            .annotate(revenue=Sum("amount"))
        )
        revenue_by_service = {row["invoice__booking__service_id"]: row["revenue"] for row in revenue_rows}

        return [
            {
                "name": row["service__name"],
                "bookings": row["bookings"],
                "revenue": _money(revenue_by_service.get(row["service_id"])),
            }
            for row in booking_rows
        ]


class CustomerInsightsView(BaseAnalyticsView):
    cache_key = "customer-insights"

    def compute(self, studio_id, start_date, end_date):
        start, end = self._bounds(start_date, end_date)
        customers = Customer.objects.filter(studio_id=studio_id)
        total_customers = customers.filter(created_at__lte=end).count()
        new_customers = customers.filter(created_at__gte=start, created_at__lte=end).count()

        # A returning customer booked in the range and has at least two bookings up to its end.
        active_customer_ids = _bookings_in_range(studio_id, start, end).values("customer_id")
        returning_customers = (
            Booking.objects.filter(studio_id=studio_id, customer_id__in=active_customer_ids, created_at__lte=end)
            .values("customer_id")
            .annotate(booking_total=Count("id"))
            .filter(booking_total__gte=2)
            .count()
        )

        total_revenue = _money(_payments_in_range(studio_id, start, end).aggregate(total=Sum("amount"))["total"])
        average = _money(total_revenue / total_customers) if total_customers else ZERO
        return {
            "total_customers": total_customers,
            "new_customers": new_customers,
            "returning_customers": returning_customers,
            "total_revenue": total_revenue,
            "average_revenue_per_customer": average,
        }
