"""URL routes for the warehouse app (v1)."""

from django.urls import path

from .views import (
    AbandonSessionView,
    CompleteSessionView,
    ConfirmedOrdersView,
    FinishPickingView,
    PackingListView,
    PackView,
    PickingListView,
    PickView,
    RemoveOrderView,
    SessionDetailView,
    SessionListCreateView,
)

app_name = "warehouse"

urlpatterns = [
    path("confirmed-orders/", ConfirmedOrdersView.as_view(), name="confirmed-orders"),
    path("sessions/", SessionListCreateView.as_view(), name="session-list"),
    path("sessions/<int:session_id>/", SessionDetailView.as_view(), name="session-detail"),
    path("sessions/<int:session_id>/picking-list/", PickingListView.as_view(), name="session-picking-list"),
    path("sessions/<int:session_id>/pick/", PickView.as_view(), name="session-pick"),
    path("sessions/<int:session_id>/finish-picking/", FinishPickingView.as_view(), name="session-finish-picking"),
    path("sessions/<int:session_id>/packing-list/", PackingListView.as_view(), name="session-packing-list"),
    path("sessions/<int:session_id>/pack/", PackView.as_view(), name="session-pack"),
    path("sessions/<int:session_id>/complete/", CompleteSessionView.as_view(), name="session-complete"),
    path("sessions/<int:session_id>/abandon/", AbandonSessionView.as_view(), name="session-abandon"),
    path(
        "sessions/<int:session_id>/orders/<int:order_id>/",
        RemoveOrderView.as_view(),
        name="session-remove-order",
    ),
]
