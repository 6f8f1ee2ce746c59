"""Store scoping for API requests.

Authentication happens upstream; the store a request acts on arrives in the
``X-Store-ID`` header and is trusted once it resolves to an existing store.
"""

from django.http import Http404
from rest_framework.exceptions import ValidationError
from stores.models import Store

STORE_HEADER = "X-Store-ID"


def get_request_store(request) -> Store:
    raw = request.headers.get(STORE_HEADER)
    if not raw:
        raise ValidationError({"detail": f"Missing {STORE_HEADER} header."})
    try:
        return Store.objects.get(pk=int(raw))
    except (ValueError, Store.DoesNotExist):
        raise Http404("Store not found.")


def actor_of(request):
    user = getattr(request, "user", None)
    return user if getattr(user, "is_authenticated", False) else None
