class NotFoundException(Exception):
    def __init__(self, resource: str, identifier: str, status_code: int = 404):
        self.resource = resource
        self.identifier = identifier
        self.status_code = status_code
    def __str__(self):
        return f"{self.resource} '{self.identifier}' not found"


class InvalidRange(Exception):
    pass


class BookingConflict(Exception):
    def __init__(self, conflicts, message: str = "time slot is already booked"):
        super().__init__(message)
        self.conflicts = list(conflicts)


class IllegalTransition(Exception):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(
            f"cannot move booking from '{getattr(current, 'value', current)}' "
            f"to '{getattr(target, 'value', target)}'"
        )


class NotPending(IllegalTransition):
    pass


class Forbidden(Exception):
    pass


class ConcurrentModification(Exception):
    """Raised when a conditional status write finds the booking already changed."""

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"booking '{booking_id}' was modified concurrently")


class ApprovalVersionMismatch(Exception):
    """Raised when another approval committed on the same resource first."""

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"approvals for resource '{resource_id}' changed concurrently")


class NotificationDeliveryFailed(Exception):
    pass
