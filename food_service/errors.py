class ServiceError(Exception):
    """Base for failures that map to a client-facing HTTP status."""

    status_code = 500
    code = "SERVICE_ERROR"

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "code": self.code, "message": self.message}


class NotFound(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidInput(ServiceError):
    status_code = 400
    code = "INVALID_INPUT"


class InventoryError(ServiceError):
    """A ledger operation would break stock invariants."""

    status_code = 409
    code = "INVENTORY_ERROR"


class InvalidTransition(ServiceError):
    status_code = 409
    code = "INVALID_TRANSITION"


class EmptyCart(ServiceError):
    status_code = 400
    code = "EMPTY_CART"

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)
