from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from scheduling.api import error_response
from scheduling.exceptions import BookingError

from .serializers import (
    AppointmentResponseSerializer,
    CancelAppointmentSerializer,
    CompleteAppointmentSerializer,
    ConflictCheckSerializer,
    ConflictSerializer,
    CreateAppointmentSerializer,
    RescheduleAppointmentSerializer,
    SeriesBookingSerializer,
    TransitionAppointmentSerializer,
    UpdateAppointmentSerializer,
)
from .services import (
    cancel_appointment,
    check_conflicts,
    complete_appointment,
    create_appointment,
    create_recurring_series,
    reschedule_appointment,
    transition_appointment,
    update_appointment,
)
from .services.persistence import get_appointment


class AppointmentCreateAPIView(APIView):
    """
    POST /appointments/api/

    Book an appointment, optionally as the first of a recurring series.

    Request body:
        {
            "patient_id": 7,
            "provider_id": 3,
            "scheduled_at": "2026-03-16T10:00:00Z",
            "duration_minutes": 30,
            "appointment_type": "CONSULTATION",   (optional)
            "priority": "MEDIUM",                 (optional)
            "recurrence": {"frequency": "WEEKLY", "count": 4}   (optional)
        }

    Success Response (201):
        The appointment, or for a series
        {"base": ..., "outcomes": [...], "booked_count": n, "skipped_count": m}.

    Error Responses:
        400: Validation errors, past times, outside working hours.
        404: Unknown patient or provider.
        409: Conflicts with existing bookings (body lists them).
        503: Provider calendar busy; retry later.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = CreateAppointmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = dict(serializer.validated_data)
        recurrence = data.pop("recurrence", None)

        try:
            if recurrence:
                result = create_recurring_series(recurrence=recurrence, actor=request.user, **data)
            else:
                appointment = create_appointment(actor=request.user, **data)
        except BookingError as e:
            return error_response(e)

        if recurrence:
            return Response(SeriesBookingSerializer(result).data, status=status.HTTP_201_CREATED)
        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_201_CREATED)


class AppointmentDetailAPIView(APIView):
    """
    GET   /appointments/api/<appointment_id>/
    PATCH /appointments/api/<appointment_id>/

    PATCH updates descriptive fields in place. A new ``scheduled_at`` or
    ``duration_minutes`` reschedules and returns the replacement; a new
    ``status`` runs the matching lifecycle action.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request, appointment_id):
        try:
            appointment = get_appointment(appointment_id)
        except BookingError as e:
            return error_response(e)
        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_200_OK)

    def patch(self, request, appointment_id):
        serializer = UpdateAppointmentSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        if not serializer.validated_data:
            return Response({"detail": "Nothing to update."}, status=status.HTTP_400_BAD_REQUEST)

        try:
            appointment = update_appointment(appointment_id, serializer.validated_data, actor=request.user)
        except BookingError as e:
            return error_response(e)
        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_200_OK)


class AppointmentCancelAPIView(APIView):
    """
    POST /appointments/api/<appointment_id>/cancel/

    Request body: {"reason": "Patient request"}
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, appointment_id):
        serializer = CancelAppointmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            appointment = cancel_appointment(
                appointment_id, serializer.validated_data["reason"], actor=request.user
            )
        except BookingError as e:
            return error_response(e)
        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_200_OK)


class AppointmentCompleteAPIView(APIView):
    """
    POST /appointments/api/<appointment_id>/complete/

    Request body: {"notes": "..."}  (optional)
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, appointment_id):
        serializer = CompleteAppointmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            appointment = complete_appointment(
                appointment_id, notes=serializer.validated_data["notes"], actor=request.user
            )
        except BookingError as e:
            return error_response(e)
        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_200_OK)


class AppointmentRescheduleAPIView(APIView):
    """
    POST /appointments/api/<appointment_id>/reschedule/

    Request body: {"scheduled_at": "...", "duration_minutes": 45, "reason": "..."}

    Success Response (201): the replacement appointment.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, appointment_id):
        serializer = RescheduleAppointmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            replacement = reschedule_appointment(
                appointment_id,
                data["scheduled_at"],
                data["duration_minutes"],
                actor=request.user,
                reason=data["reason"],
            )
        except BookingError as e:
            return error_response(e)
        return Response(AppointmentResponseSerializer(replacement).data, status=status.HTTP_201_CREATED)


class AppointmentTransitionAPIView(APIView):
    """
    POST /appointments/api/<appointment_id>/transition/

    Request body: {"action": "CONFIRM" | "CHECK_IN" | "START" | "NO_SHOW" | ...}
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, appointment_id):
        serializer = TransitionAppointmentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            appointment = transition_appointment(
                appointment_id,
                data["action"],
                actor=request.user,
                reason=data["reason"],
                notes=data["notes"],
            )
        except BookingError as e:
            return error_response(e)
        return Response(AppointmentResponseSerializer(appointment).data, status=status.HTTP_200_OK)


class ConflictCheckAPIView(APIView):
    """
    POST /appointments/api/conflicts/

    Dry run: lists every conflict the interval would hit, without booking.

    Success Response (200):
        {"available": bool, "results": [conflict, ...]}
    """

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = ConflictCheckSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            conflicts = check_conflicts(
                data["provider_id"],
                data["scheduled_at"],
                data["duration_minutes"],
                exclude_id=data["exclude_id"],
                patient_id=data["patient_id"],
            )
        except BookingError as e:
            return error_response(e)

        return Response(
            {
                "available": not conflicts,
                "results": ConflictSerializer(conflicts, many=True).data,
            },
            status=status.HTTP_200_OK,
        )
