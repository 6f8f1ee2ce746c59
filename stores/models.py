"""Store: the seller scope every order, product and session belongs to."""

from django.db import models


class Store(models.Model):
    name = models.CharField(max_length=120)
    code = models.SlugField(max_length=64, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"Store<{self.code}>"
