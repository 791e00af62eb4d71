"""
CLI-specific error types.

All CLI errors inherit from CLIError for consistent handling.
"""


class CLIError(Exception):
    """Base exception for all CLI-related failures."""
    pass


class ValidationError(CLIError):
    """Raised when a command's target cannot be resolved (unknown or broken job)."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
