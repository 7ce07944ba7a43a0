"""
Standard exit codes for branchpromote commands.

Following Unix/POSIX conventions for command-line tools.
"""
from typing import Optional

# Standard POSIX exit codes
SUCCESS = 0              # Successful termination
GENERAL_ERROR = 1        # General errors
USAGE_ERROR = 2          # Misuse of shell command (wrong arguments, etc.)

# Application-specific exit codes (64-113 are typically available)
CONFIG_ERROR = 66        # Configuration file error
DATA_ERROR = 70          # Data format or validation error
POLICY_REJECTED = 72     # Branch not covered by any promotion rule
DESCRIPTOR_ERROR = 73    # Descriptor has no rewritable image line
COLLABORATOR_FAILED = 74 # Build, scan, registry, git or deploy step failed
INTERRUPTED = 130        # Terminated by Ctrl+C (SIGINT)

# Exit code mappings for common exceptions
EXCEPTION_EXIT_CODES = {
    'FileNotFoundError': GENERAL_ERROR,
    'ValueError': DATA_ERROR,
    'KeyError': DATA_ERROR,
    'JSONDecodeError': DATA_ERROR,
    'InvalidInput': DATA_ERROR,
    'PolicyRejected': POLICY_REJECTED,
    'DescriptorMalformed': DESCRIPTOR_ERROR,
    'CollaboratorFailure': COLLABORATOR_FAILED,
    'ConfigError': CONFIG_ERROR,
    'KeyboardInterrupt': INTERRUPTED,
}


def get_exit_code_for_exception(exc: Exception) -> int:
    """
    Get the appropriate exit code for an exception.

    Args:
        exc: The exception that occurred

    Returns:
        Appropriate exit code
    """
    exc_name = exc.__class__.__name__
    return EXCEPTION_EXIT_CODES.get(exc_name, GENERAL_ERROR)


class CommandError(Exception):
    """
    Exception that commands can raise to indicate specific exit codes.
    """
    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


class ConfigError(CommandError):
    """Raised when there's a configuration error."""
    def __init__(self, message: str):
        super().__init__(message, CONFIG_ERROR)


def get_exit_code_for_outcome(outcome) -> int:
    """
    Get the exit code for a finished promotion run.

    Deployed and skipped runs succeed; rejected and failed runs map
    through the error type recorded on the outcome.
    """
    if outcome.success:
        return SUCCESS
    return EXCEPTION_EXIT_CODES.get(outcome.error_type or '', GENERAL_ERROR)
