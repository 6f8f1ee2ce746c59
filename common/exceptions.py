"""Base class for domain errors that cross the service/API boundary."""


class DomainError(Exception):
    """A rejected operation with a stable machine code and structured payload.

    Services raise subclasses; views render ``as_dict()`` with ``status_code``.
    """

    code = "error"
    status_code = 400
    default_detail = "Unable to complete the request."

    def __init__(self, detail: str | None = None, **payload):
        self.detail = detail or self.default_detail
        self.payload = payload
        super().__init__(self.detail)

    def as_dict(self) -> dict:
        return {"code": self.code, "detail": self.detail, **self.payload}
