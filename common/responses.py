from rest_framework.response import Response

from .exceptions import DomainError


def domain_error_response(exc: DomainError) -> Response:
    return Response(exc.as_dict(), status=exc.status_code)
