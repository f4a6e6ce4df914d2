class FramesError(Exception):
    """Base class for errors raised by the entry store."""


class ValidationError(FramesError, ValueError):
    pass


class NotFoundError(FramesError, KeyError):
    def __init__(self, entry_id):
        super().__init__(f"entry not found: {entry_id}")
        self.entry_id = entry_id

    def __str__(self):
        # KeyError would repr() the message.
        return self.args[0]


class StorageError(FramesError):
    """The underlying SQLite database failed to read or write."""
