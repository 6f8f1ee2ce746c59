"""URL routes for the orders app (v1)."""

from django.urls import path

from .views import OrderDetailView, OrderListCreateView, OrderTransitionView, ReadyToShipListView

app_name = "orders"

urlpatterns = [
    path("", OrderListCreateView.as_view(), name="order-list"),
    path("ready-to-ship/", ReadyToShipListView.as_view(), name="order-ready-to-ship"),
    path("<int:order_id>/", OrderDetailView.as_view(), name="order-detail"),
    path("<int:order_id>/transition/", OrderTransitionView.as_view(), name="order-transition"),
]
