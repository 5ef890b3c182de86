"""Exception hierarchy for the console."""


class PalmConsoleError(Exception):
    """Base class for all console errors."""


class ConfigurationError(PalmConsoleError):
    """Missing or malformed settings."""


class AmountParseError(PalmConsoleError, ValueError):
    """A monetary or weight value could not be read as a decimal."""

    def __init__(self, raw):
        super().__init__(f"Not a valid amount: {raw!r}")
        self.raw = raw


class ValidationError(PalmConsoleError):
    """Form input rejected before any backend call."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class BackendError(PalmConsoleError):
    """A backend request failed."""

    def __init__(self, message: str, table: str | None = None):
        super().__init__(message)
        self.message = message
        self.table = table


class DataLoadError(BackendError):
    """One fetch in a load group failed, so the whole load is abandoned."""


class RecordNotFoundError(BackendError):
    """A row looked up by id does not exist."""

    def __init__(self, table: str, record_id: str):
        super().__init__(f"{table} row '{record_id}' not found", table=table)
        self.record_id = record_id
