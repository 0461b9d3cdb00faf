"""Error types shared across the bus notifier."""


class BusNotifierError(Exception):
    """Base class for all bus notifier errors."""


class ValidationError(BusNotifierError):
    """User input rejected at the current registration stage.

    The message is the corrective prompt shown to the user.
    """


class StorageFault(BusNotifierError):
    """A store could not be opened, read, or committed."""


class UpstreamFault(BusNotifierError):
    """The live arrival service failed or returned an unusable payload."""


class DesyncError(BusNotifierError):
    """The weekday index names an owner with no job on that weekday."""

    def __init__(self, owner_id: str, weekday: str):
        super().__init__(
            f"Weekday index lists owner {owner_id} under {weekday} "
            f"but the owner has no job on that day"
        )
        self.owner_id = owner_id
        self.weekday = weekday
