from __future__ import annotations


class PaddockError(Exception):
    """Base for errors that are reported to the caller as ``{"error": message}``."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(PaddockError):
    status_code = 401


class Forbidden(PaddockError):
    status_code = 403


class NotFound(PaddockError):
    status_code = 404


class InvalidState(PaddockError):
    status_code = 400


class ValidationError(PaddockError):
    status_code = 400


class Conflict(PaddockError):
    status_code = 409


class InvalidTransition(InvalidState):
    def __init__(self, action: str, current, required):
        names = " or ".join(s.value for s in sorted(required, key=lambda s: s.value))
        super().__init__(f"Cannot {action} event in {current.value} status; requires {names}")
        self.action = action
        self.current = current
        self.required = frozenset(required)


class WindowClosed(InvalidState):
    pass


class NotEligible(InvalidState):
    pass


class DuplicateRegistration(Conflict):
    pass


class EventFull(Conflict):
    pass


class StartNumberTaken(Conflict):
    def __init__(self, start_number: int):
        super().__init__(f"Start number #{start_number} is already taken in this event")
        self.start_number = start_number


class InvalidClass(ValidationError):
    pass


class VehicleRequired(ValidationError):
    pass
