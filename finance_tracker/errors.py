# finance_tracker/errors.py


class FinanceTrackerError(Exception):
    """Base class for errors raised by the finance tracker."""


class DataIntegrityError(FinanceTrackerError):
    """A record or input value failed validation at the boundary."""


class NotFound(FinanceTrackerError):
    pass


class PermissionDenied(FinanceTrackerError):
    pass


class LoginRequired(FinanceTrackerError):
    pass


class AdminRequired(PermissionDenied):
    pass
