"""Error taxonomy shared by the ledger services.

Services raise these; the HTTP layer renders them as
``{"detail": ..., "code": ...}`` with the class's status code.
"""


class LedgerError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(LedgerError):
    status_code = 404
    code = "not_found"


class AlreadyClosed(LedgerError):
    status_code = 409
    code = "already_closed"


class InvalidInput(LedgerError):
    status_code = 400
    code = "invalid"


class PreconditionFailed(LedgerError):
    """The record is no longer in the state the operation expects."""

    status_code = 409
    code = "precondition_failed"


class OutOfStock(LedgerError):
    status_code = 409
    code = "out_of_stock"


class BorrowingBlocked(LedgerError):
    status_code = 403
    code = "borrowing_blocked"
