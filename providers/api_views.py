from datetime import datetime, timedelta

from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from scheduling.api import error_response
from scheduling.exceptions import BookingError

from .serializers import IntervalSerializer, ProviderScheduleSerializer, ProviderWorkloadSerializer
from .services import find_next_available_slot, get_provider_schedule, get_provider_workload


def _parse_date(value):
    return datetime.strptime(value, "%Y-%m-%d").date()


class ProviderScheduleAPIView(APIView):
    """
    GET /providers/api/<provider_id>/schedule/?date=YYYY-MM-DD

    Returns the provider's slots for the date, split into available,
    booked and blocked lists.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, provider_id):
        date_str = request.query_params.get("date")
        if not date_str:
            return Response(
                {"date": "This query parameter is required (format: YYYY-MM-DD)."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            target_date = _parse_date(date_str)
        except ValueError:
            return Response(
                {"date": "Invalid date format. Use YYYY-MM-DD."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            schedule = get_provider_schedule(provider_id, target_date)
        except BookingError as e:
            return error_response(e)

        serializer = ProviderScheduleSerializer(schedule)
        return Response(serializer.data, status=status.HTTP_200_OK)


class ProviderNextAvailableAPIView(APIView):
    """
    GET /providers/api/<provider_id>/next-available/?duration=30&from=YYYY-MM-DD

    Returns the first free interval long enough for the duration, or
    ``{"result": null}`` when nothing fits in the search window.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, provider_id):
        errors = {}
        duration = request.query_params.get("duration", "30")
        try:
            duration = int(duration)
        except ValueError:
            errors["duration"] = "Duration must be a whole number of minutes."

        start_from = None
        from_str = request.query_params.get("from")
        if from_str:
            try:
                start_from = _parse_date(from_str)
            except ValueError:
                errors["from"] = "Invalid date format. Use YYYY-MM-DD."

        if errors:
            return Response(errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            found = find_next_available_slot(provider_id, duration, start_from=start_from)
        except BookingError as e:
            return error_response(e)

        if found is None:
            return Response(
                {"detail": "No available slot in the search window.", "result": None},
                status=status.HTTP_200_OK,
            )
        return Response({"result": IntervalSerializer(found).data}, status=status.HTTP_200_OK)


class ProviderWorkloadAPIView(APIView):
    """
    GET /providers/api/<provider_id>/workload/?start=YYYY-MM-DD&end=YYYY-MM-DD

    Booked versus working hours over the range. Defaults to the current week.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, provider_id):
        today = timezone.localdate()
        start_str = request.query_params.get("start")
        end_str = request.query_params.get("end")
        try:
            start_date = _parse_date(start_str) if start_str else today - timedelta(days=today.weekday())
            end_date = _parse_date(end_str) if end_str else start_date + timedelta(days=6)
        except ValueError:
            return Response(
                {"detail": "Invalid date format. Use YYYY-MM-DD."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            workload = get_provider_workload(provider_id, start_date, end_date)
        except BookingError as e:
            return error_response(e)

        return Response(ProviderWorkloadSerializer(workload).data, status=status.HTTP_200_OK)
