"""
Errors raised by the chain state machine.

Every failure is a local validation failure raised before any state is
touched. The integer codes are stable so callers can match on them.
"""


class ValidationError(Exception):
    """Raised when validation fails."""
    code = -1

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class InvalidState(ValidationError):
    """Operation not valid for the current active/inactive phase."""
    code = 0


class WrongPayment(ValidationError):
    """Join payment is not exactly the next entry price."""
    code = 2

    def __init__(self, expected: int, got: int):
        self.expected = expected
        self.got = got
        super().__init__(f"Wrong payment. Expected {expected}, got {got}")


class AssetMismatch(ValidationError):
    """Funds presented in an asset other than the chain's asset."""
    code = 3

    def __init__(self, expected, got):
        self.expected = expected
        self.got = got
        super().__init__(f"Asset mismatch. Chain uses {expected}, got {got}")


class PrematureEnd(ValidationError):
    """End called before the countdown expired."""
    code = 4

    def __init__(self, end_timestamp: int, now: int):
        self.end_timestamp = end_timestamp
        self.now = now
        super().__init__(
            f"Countdown still running: ends at {end_timestamp}, now {now} "
            f"({end_timestamp - now} ms left)"
        )


class InvalidParameter(ValidationError):
    """Zero or out-of-range multiplier, burn rate, duration or amount."""
    code = 6
