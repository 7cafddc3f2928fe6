"""
Ilesta v0.1.0

Configuration schema for Ilesta.

Defines all available configuration parameters with defaults and validation.

Author: Ilesta Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import copy
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


# Default configuration values
DEFAULT_CONFIG = {
    # ========================================================================
    # Alignment Filtering
    # ========================================================================
    'filtering': {
        'min_overlap_length': 2000,    # Minimum alignment block length (bp)
        'min_overlap_count': 3,        # Alignments required per read pair
        'min_percent_identity': 5.0,   # Residue matches / block length (%)
        'overhang_ratio': 0.8,         # Max overhang as fraction of mapped length
        'max_overhang': None,          # Absolute overhang cap (bp), None = off
    },

    # ========================================================================
    # Graph Simplification
    # ========================================================================
    'simplification': {
        'max_bubble_length': 100,      # Max internal nodes per bubble branch
        'min_support_ratio': 1.1,      # Best/second-best support to pop a bubble
        'max_tip_len': 4,              # Max tip length (nodes)
        'fuzz': 10,                    # Transitive reduction tolerance (bp)
        'cleanup_iterations': 2,       # Max simplification rounds
        'short_edge_ratio': 0.8,       # Overlap fraction below which arcs are short
    },

    # ========================================================================
    # Runtime
    # ========================================================================
    'runtime': {
        'threads': 1,                  # Worker processes (filtering, sequences)
        'batch_size': 100000,          # PAF lines per filtering batch
    },

    # ========================================================================
    # Output
    # ========================================================================
    'output': {
        'prefix': 'unitigs',
        'write_dot': True,
        'write_stats': True,
        'include_sequence': True,      # Sequences in GFA S lines
        'line_width': 80,
        'logging': {
            'level': 'INFO',
            'log_file': 'ilesta.log',
        },
    },
}


# Section each flat parameter lives in.
PARAMETER_SECTIONS = {
    'min_overlap_length': 'filtering',
    'min_overlap_count': 'filtering',
    'min_percent_identity': 'filtering',
    'overhang_ratio': 'filtering',
    'max_overhang': 'filtering',
    'max_bubble_length': 'simplification',
    'min_support_ratio': 'simplification',
    'max_tip_len': 'simplification',
    'fuzz': 'simplification',
    'cleanup_iterations': 'simplification',
    'short_edge_ratio': 'simplification',
    'threads': 'runtime',
    'batch_size': 'runtime',
}

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


@dataclass
class AssemblyParameters:
    """
    Flat, typed view of the numeric thresholds.

    Attributes mirror the keys of the 'filtering', 'simplification' and
    'runtime' config sections.
    """
    min_overlap_length: int = 2000
    min_overlap_count: int = 3
    min_percent_identity: float = 5.0
    overhang_ratio: float = 0.8
    max_overhang: Optional[int] = None
    max_bubble_length: int = 100
    min_support_ratio: float = 1.1
    max_tip_len: int = 4
    fuzz: int = 10
    cleanup_iterations: int = 2
    short_edge_ratio: float = 0.8
    threads: int = 1
    batch_size: int = 100000

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'AssemblyParameters':
        """Pick the threshold values out of a nested config dict."""
        values = {}
        for f in fields(cls):
            section = config.get(PARAMETER_SECTIONS[f.name], {}) or {}
            if f.name in section:
                values[f.name] = section[f.name]
        return cls(**values)

    def apply_to(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``config`` with these values written back."""
        result = copy.deepcopy(config)
        for f in fields(self):
            result.setdefault(PARAMETER_SECTIONS[f.name], {})[f.name] = getattr(self, f.name)
        return result

    def validate(self) -> List[str]:
        """
        Check ranges.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        def is_int(value) -> bool:
            return isinstance(value, int) and not isinstance(value, bool)

        def is_number(value) -> bool:
            return isinstance(value, (int, float)) and not isinstance(value, bool)

        for name in ('min_overlap_length', 'min_overlap_count', 'max_bubble_length',
                     'cleanup_iterations', 'threads', 'batch_size'):
            value = getattr(self, name)
            if not is_int(value) or value < 1:
                errors.append(f"{name} must be an integer >= 1 (got {value!r})")

        for name in ('max_tip_len', 'fuzz'):
            value = getattr(self, name)
            if not is_int(value) or value < 0:
                errors.append(f"{name} must be an integer >= 0 (got {value!r})")

        if self.max_overhang is not None and (not is_int(self.max_overhang) or self.max_overhang < 0):
            errors.append(f"max_overhang must be null or an integer >= 0 (got {self.max_overhang!r})")

        if not is_number(self.min_percent_identity) or not 0 <= self.min_percent_identity <= 100:
            errors.append(f"min_percent_identity must be within [0, 100] (got {self.min_percent_identity!r})")

        if not is_number(self.overhang_ratio) or not 0 <= self.overhang_ratio <= 1:
            errors.append(f"overhang_ratio must be within [0, 1] (got {self.overhang_ratio!r})")

        if not is_number(self.min_support_ratio) or self.min_support_ratio < 1.0:
            errors.append(f"min_support_ratio must be >= 1.0 (got {self.min_support_ratio!r})")

        if not is_number(self.short_edge_ratio) or not 0 < self.short_edge_ratio <= 1:
            errors.append(f"short_edge_ratio must be within (0, 1] (got {self.short_edge_ratio!r})")

        return errors


def validate_parameters(params: AssemblyParameters) -> AssemblyParameters:
    """
    Fail fast on out-of-range thresholds.

    Raises:
        ConfigValidationError: Listing every problem found
    """
    errors = params.validate()
    if errors:
        raise ConfigValidationError("Invalid configuration:\n  " + "\n  ".join(errors))
    return params


def check_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fail fast on a bad configuration.

    Raises:
        ConfigValidationError: Listing every problem found by :func:`validate_config`
    """
    errors = validate_config(config)
    if errors:
        raise ConfigValidationError("Invalid configuration:\n  " + "\n  ".join(errors))
    return config


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from file or return defaults.

    Args:
        config_path: Path to YAML config file (None = use defaults)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If ``config_path`` is given but does not exist
        ConfigValidationError: If the file is not a YAML mapping
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(config_path) as f:
            try:
                user_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigValidationError(f"Invalid YAML in {config_path}: {e}") from e

        if user_config is None:
            user_config = {}
        if not isinstance(user_config, dict):
            raise ConfigValidationError(f"Config file must contain a mapping: {config_path}")

        # Deep merge user config into defaults
        config = _deep_merge(config, user_config)

    return config


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def save_config_template(output_path: Path, template: str = 'default'):
    """
    Save a configuration template to file.

    Args:
        output_path: Output file path
        template: Template type ('default', 'sensitive', 'strict')
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    # Customize for specific templates
    if template == 'sensitive':
        config['filtering']['min_overlap_length'] = 1000
        config['filtering']['min_overlap_count'] = 2
        config['simplification']['max_tip_len'] = 2

    elif template == 'strict':
        config['filtering']['min_overlap_length'] = 3000
        config['filtering']['min_overlap_count'] = 5
        config['simplification']['min_support_ratio'] = 1.5
        config['simplification']['cleanup_iterations'] = 4

    elif template != 'default':
        raise ValueError(f"Unknown config template: {template}")

    with open(output_path, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate configuration dictionary.

    Args:
        config: Configuration to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    for section, values in config.items():
        if section not in DEFAULT_CONFIG:
            errors.append(f"Unknown config section: {section}")
            continue
        if not isinstance(values, dict):
            errors.append(f"Config section '{section}' must be a mapping")
            continue
        for key in values:
            if key not in DEFAULT_CONFIG[section]:
                errors.append(f"Unknown config key: {section}.{key}")

    if errors:
        return errors

    try:
        params = AssemblyParameters.from_config(config)
    except TypeError as e:
        return [f"Invalid parameter set: {e}"]
    errors.extend(params.validate())

    level = config.get('output', {}).get('logging', {}).get('level', 'INFO')
    if str(level).upper() not in LOG_LEVELS:
        errors.append(f"Invalid logging level: {level}")

    line_width = config.get('output', {}).get('line_width', 80)
    if not isinstance(line_width, int) or isinstance(line_width, bool) or line_width < 0:
        errors.append(f"output.line_width must be an integer >= 0 (got {line_width!r})")

    return errors
