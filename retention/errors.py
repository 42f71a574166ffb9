"""Exceptions raised by the retention engine."""


class InvalidInputError(ValueError):
    """
    Raised for malformed or logically inconsistent input.

    Examples: negative monthly rate, cancel date before join date,
    join date in the future. Raised before any output is produced.
    """
