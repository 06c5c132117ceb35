"""Error taxonomy shared by the foglight discovery and monitoring paths."""


class FoglightError(Exception):
    """
    Brief: Base class for every error foglight surfaces to callers.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class ValidationError(FoglightError, ValueError):
    """
    Brief: Caller input was rejected before any network I/O happened.

    Inputs:
    - message: description of the offending parameter

    Outputs:
    - Exception instance
    """

    pass


class ConcurrencyError(FoglightError):
    """
    Brief: A discovery was requested while another one is still in flight.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class TransportError(FoglightError):
    """
    Brief: The multicast socket could not be opened, joined or written to.

    Inputs:
    - message: description (the underlying OSError is chained as __cause__)

    Outputs:
    - Exception instance
    """

    pass
