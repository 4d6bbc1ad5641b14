# backend/app/services/errors.py
"""
Service-layer exceptions.

Routers translate these into HTTP responses:
    NotFoundError     → 404
    PeriodStateError  → 409
    ValueError        → 400
"""


class NotFoundError(LookupError):
    """A referenced row (company, employee, period, ...) does not exist."""


class PeriodStateError(ValueError):
    """The payroll period is not in a state that allows the operation."""

    def __init__(self, message: str, *, status: str | None = None):
        super().__init__(message)
        self.status = status
