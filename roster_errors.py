class RosterError(Exception):
    """Base class for every error raised by the roster engine."""

    pass


class ReferenceNotFoundError(RosterError, LookupError):
    """Raised when a staff id or shift-type id does not resolve."""

    def __init__(self, kind: str, ref):
        self.kind = kind
        self.ref = ref
        super().__init__(f"{kind} not found: {ref!r}")


class InvalidConfigurationError(RosterError, ValueError):
    """Raised when a shift type or hospital configuration is malformed."""

    pass


class InvalidTransitionError(RosterError):
    """Raised when the conflict workflow is asked for an illegal transition."""

    pass


class ScheduleDeadlineExceeded(RosterError):
    """Raised when a scheduling run exceeds its deadline."""

    pass
