class LongpollError(Exception):
    kind = "error"


class InvalidArgument(LongpollError, ValueError):
    """Rejected before anything was registered or mutated."""

    kind = "invalid_argument"


class InternalError(LongpollError, RuntimeError):
    """The broker could not serve the call. Other topics stay usable."""

    kind = "internal"
