"""
Error taxonomy for the Resource Manager Simulator.

Per-event errors (everything derived from LedgerError) are raised by the
ledger before any state is touched, so a caller that catches one can log it
and move on to the next event. SetupFailure is the only fatal error.
"""


class LedgerError(Exception):
    """Base class for errors raised while applying a single event."""
    pass


class InvalidRelease(LedgerError):
    """Release quantity exceeds what the slot currently holds."""

    def __init__(self, slot: int, resource: int, quantity: int, held: int):
        self.slot = slot
        self.resource = resource
        self.quantity = quantity
        self.held = held
        super().__init__(
            f"P{slot}: cannot release R{resource}[{quantity}] - only holding {held}"
        )


class ResourceIndexOutOfRange(LedgerError):
    """Event names a resource type that does not exist."""

    def __init__(self, resource: int, num_resources: int):
        self.resource = resource
        super().__init__(f"Invalid resource type {resource} (valid: 0..{num_resources - 1})")


class SlotIndexOutOfRange(LedgerError):
    """Event names a process slot outside the pool."""

    def __init__(self, slot: int, num_slots: int):
        self.slot = slot
        super().__init__(f"Invalid process slot {slot} (valid: 0..{num_slots - 1})")


class InvalidQuantity(LedgerError):
    """Request or release quantity is not positive."""

    def __init__(self, quantity: int):
        self.quantity = quantity
        super().__init__(f"Quantity must be positive (got {quantity})")


class SlotNotActive(LedgerError):
    """Slot is not in the state the operation needs."""
    pass


class NonIntegerField(LedgerError):
    """Event carries a slot, resource or quantity that is not an integer."""

    def __init__(self, name: str, value):
        self.name = name
        self.value = value
        super().__init__(f"{name} must be an integer (got {value!r})")


class SetupFailure(Exception):
    """Channel or shared state could not be created; the run cannot start."""
    pass
