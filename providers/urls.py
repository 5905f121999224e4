from django.urls import path

from . import api_views

app_name = "providers"

urlpatterns = [
    path(
        "api/<int:provider_id>/schedule/",
        api_views.ProviderScheduleAPIView.as_view(),
        name="api_provider_schedule",
    ),
    path(
        "api/<int:provider_id>/next-available/",
        api_views.ProviderNextAvailableAPIView.as_view(),
        name="api_provider_next_available",
    ),
    path(
        "api/<int:provider_id>/workload/",
        api_views.ProviderWorkloadAPIView.as_view(),
        name="api_provider_workload",
    ),
]
