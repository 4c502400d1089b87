"""
Configuration file support for cytoabundance.

Supports YAML and JSON config files with CLI argument override:

    preprocess:
      cofactor: 5.0
      linearize: true
      logicle_m: 4.5
    report:
      style: paper
      palette: default
      format: png
      dpi: 300
      fdr_label: FDR
"""

import json
from argparse import Namespace
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

VALID_STYLES = ("paper", "presentation", "notebook")
VALID_FORMATS = ("png", "pdf", "svg", "html")


@dataclass
class PreprocessConfig:
    """Per-instrument preprocessing settings."""
    cofactor: float = 5.0
    linearize: bool = True
    logicle_m: float = 4.5


@dataclass
class ReportConfig:
    """Report figure settings."""
    style: str = "paper"
    palette: str = "default"
    format: str = "png"
    dpi: int = 300
    fdr_label: str = "FDR"


@dataclass
class AnalysisConfig:
    """
    Complete configuration: one section per concern.

    Unknown keys inside a section are ignored.
    """
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "AnalysisConfig":
        return cls(
            preprocess=_section(PreprocessConfig, config.get("preprocess")),
            report=_section(ReportConfig, config.get("report")),
        )


def _section(schema, values: Optional[Dict[str, Any]]):
    if not values:
        return schema()
    known = {f.name for f in fields(schema)}
    return schema(**{key: value for key, value in values.items() if key in known})


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported or invalid

    Examples:
        >>> config = load_config(Path("cytoabundance.yaml"))
        >>> print(config['preprocess']['cofactor'])
        5.0
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    try:
        with open(config_path, 'r') as f:
            if suffix in ('.yaml', '.yml'):
                config = yaml.safe_load(f)
            elif suffix == '.json':
                config = json.load(f)
            else:
                raise ValueError(
                    f"Unsupported config format: {suffix}. "
                    f"Use .yaml, .yml, or .json"
                )
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}")
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}")

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a dictionary/mapping at top level")

    return config


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration values.

    Parameters:
        config: Configuration dictionary

    Raises:
        ValueError: If configuration is invalid
    """
    preprocess = config.get('preprocess') or {}
    report = config.get('report') or {}

    for key in ('cofactor', 'logicle_m'):
        if key in preprocess:
            value = preprocess[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"Preprocess {key} must be positive number, got: {value}")

    if 'style' in report and report['style'] not in VALID_STYLES:
        raise ValueError(
            f"Invalid report style '{report['style']}'. "
            f"Choose from: {', '.join(VALID_STYLES)}"
        )

    if 'format' in report and report['format'] not in VALID_FORMATS:
        raise ValueError(
            f"Invalid report format '{report['format']}'. "
            f"Choose from: {', '.join(VALID_FORMATS)}"
        )

    if 'dpi' in report:
        dpi = report['dpi']
        if isinstance(dpi, bool) or not isinstance(dpi, int) or dpi <= 0:
            raise ValueError(f"Report dpi must be positive integer, got: {dpi}")


def _merge_value(cli_value: Any, config_value: Any, was_explicitly_set: bool) -> Any:
    """
    Merge a single config value with CLI argument.

    Explicit CLI arguments win, then config values, then CLI defaults.
    """
    if was_explicitly_set:
        return cli_value
    if config_value is not None:
        return config_value
    return cli_value


def _explicit_args(cli_args: Optional[List[str]]) -> set:
    explicit = set()
    short_to_long = {'o': 'output', 'c': 'config'}
    for arg in cli_args or []:
        if arg.startswith('--'):
            name = arg[2:].split('=', 1)[0].replace('-', '_')
            # --no-linearize sets linearize
            if name.startswith('no_'):
                name = name[3:]
            explicit.add(name)
        elif arg.startswith('-') and len(arg) == 2 and arg[1] in short_to_long:
            explicit.add(short_to_long[arg[1]])
    return explicit


def merge_config_with_args(
    config: Dict[str, Any],
    args: Namespace,
    cli_args: Optional[List[str]] = None,
) -> Namespace:
    """
    Merge config file values with CLI arguments.

    Priority (highest to lowest):
    1. Explicitly provided CLI arguments
    2. Config file values
    3. CLI argument defaults

    Parameters:
        config: Configuration dictionary from load_config()
        args: Parsed CLI arguments (argparse.Namespace)
        cli_args: Raw CLI arguments list (for detecting explicit values).
                  If None, assumes all args are defaults

    Returns:
        Updated Namespace with merged values
    """
    explicit = _explicit_args(cli_args)
    merged = Namespace(**vars(args))

    for section in ('preprocess', 'report'):
        for key, value in (config.get(section) or {}).items():
            if not hasattr(merged, key):
                continue
            setattr(merged, key, _merge_value(getattr(merged, key), value, key in explicit))

    return merged


def config_from_args(args: Namespace) -> AnalysisConfig:
    """Build an AnalysisConfig from (merged) CLI arguments."""
    values = vars(args)
    return AnalysisConfig.from_dict({
        'preprocess': {f.name: values[f.name] for f in fields(PreprocessConfig) if f.name in values},
        'report': {f.name: values[f.name] for f in fields(ReportConfig) if f.name in values},
    })
