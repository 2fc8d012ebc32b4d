"""Domain exceptions raised below the HTTP layer.

Routers translate these into ``HTTPException`` responses; only
``BothBackendsFailed`` is allowed to bubble up to the global handler.
"""


class StorageError(Exception):
    """Base class for storage-layer failures."""


class BothBackendsFailed(StorageError):
    """Neither the database nor the JSON file could serve the operation."""

    def __init__(self, operation: str, primary: Exception | None, fallback: Exception):
        self.operation = operation
        self.primary = primary
        self.fallback = fallback
        super().__init__(f"{operation} failed on both backends: {fallback}")


class NicknameTaken(Exception):
    """The normalized nickname is already present in the presence table."""


class MessageNotFound(Exception):
    pass


class MessageForbidden(Exception):
    """Only the author of a chat message may delete it."""


class InvalidTransition(Exception):
    """A moderation transition not allowed from the post's current status."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"cannot move post from {current} to {target}")
