"""
Ilesta v0.1.0

Configuration management for Ilesta.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from .schema import (
    DEFAULT_CONFIG,
    AssemblyParameters,
    ConfigValidationError,
    check_config,
    load_config,
    save_config_template,
    validate_config,
    validate_parameters,
)

__all__ = [
    "DEFAULT_CONFIG",
    "AssemblyParameters",
    "ConfigValidationError",
    "check_config",
    "load_config",
    "save_config_template",
    "validate_config",
    "validate_parameters",
]
