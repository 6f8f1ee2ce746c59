from django.urls import path

from .views import MovementListView, ReconciliationView

urlpatterns = [
    path("movements/", MovementListView.as_view(), name="movement-list"),
    path("reconciliation/", ReconciliationView.as_view(), name="stock-reconciliation"),
]
