"""Enumerations for CLI exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes used by every command.

    Failure kinds are not distinguished by code; the printed prefix carries
    the classification.
    """

    OK = 0
    FAILURE = 1
