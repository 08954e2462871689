"""
devshell operations.

Each operation returns an optional success message, or raises ExitError
with the message and exit code the CLI should report.
"""

from typing import Optional


class ExitError(Exception):
    """An operation failure to report to the user and exit with."""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


# What a successful operation returns: a message to print, or nothing
OpResult = Optional[str]

__all__ = ['ExitError', 'OpResult']
