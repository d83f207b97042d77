"""Domain errors raised by the services layer.

Routers translate these into HTTP responses; the printing errors never reach a
client directly because the dispatcher folds them into a ``PrintOutcome``.
"""


class PosError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PosError):
    pass


class ItemUnavailable(PosError):
    def __init__(self, menu_item_id: str):
        super().__init__(f"Menu item {menu_item_id} not found or unavailable")
        self.menu_item_id = menu_item_id


class TransactionFailure(PosError):
    status_code = 500


class NotFound(PosError):
    status_code = 404


class InvalidStatusValue(PosError):
    def __init__(self, value, allowed):
        super().__init__(f"invalid status {value!r}; expected one of {sorted(allowed)}")
        self.value = value


class InvalidTransition(PosError):
    status_code = 409


class OrderCompletionBlocked(PosError):
    status_code = 409


class NoPrinterAvailable(PosError):
    status_code = 503


class PrintDispatchFailure(PosError):
    status_code = 502

    def __init__(self, message: str, printer_id: str | None = None):
        super().__init__(message)
        self.printer_id = printer_id
