"""Shared helpers: logging, toolkit environment, input validation."""

from hippot2.utils.workflow import (
    check_dependencies,
    configure_tool_environment,
    setup_logging,
    validate_inputs,
)

__all__ = ['check_dependencies', 'configure_tool_environment', 'setup_logging', 'validate_inputs']
