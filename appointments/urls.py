from django.urls import path

from . import api_views

app_name = "appointments"

urlpatterns = [
    path(
        "api/",
        api_views.AppointmentCreateAPIView.as_view(),
        name="api_create_appointment",
    ),
    path(
        "api/conflicts/",
        api_views.ConflictCheckAPIView.as_view(),
        name="api_check_conflicts",
    ),
    path(
        "api/<int:appointment_id>/",
        api_views.AppointmentDetailAPIView.as_view(),
        name="api_appointment_detail",
    ),
    path(
        "api/<int:appointment_id>/cancel/",
        api_views.AppointmentCancelAPIView.as_view(),
        name="api_cancel_appointment",
    ),
    path(
        "api/<int:appointment_id>/complete/",
        api_views.AppointmentCompleteAPIView.as_view(),
        name="api_complete_appointment",
    ),
    path(
        "api/<int:appointment_id>/reschedule/",
        api_views.AppointmentRescheduleAPIView.as_view(),
        name="api_reschedule_appointment",
    ),
    path(
        "api/<int:appointment_id>/transition/",
        api_views.AppointmentTransitionAPIView.as_view(),
        name="api_transition_appointment",
    ),
]
