"""Base exception classes for Nostr Media Observatory."""


class ObservatoryError(Exception):
    """
    Base exception for all observatory errors.

    All custom exceptions in the application should inherit from this class
    to enable consistent error handling and catching.
    """

    pass
