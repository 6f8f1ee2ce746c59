"""Django app configuration for the Stores app."""

from django.apps import AppConfig


class StoresConfig(AppConfig):
    """AppConfig for seller stores (the tenancy scope of every order)."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "stores"
