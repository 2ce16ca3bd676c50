"""Project-level configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from sheetcalc.cells import DEFAULT_COLS, DEFAULT_ROWS
from sheetcalc.formulas.errors import SheetConfigError
from sheetcalc.formulas.evaluator import DEFAULT_MAX_DEPTH, MAX_NESTING_DEPTH

CONFIG_FILENAME = "sheetcalc.yaml"

DEFAULT_CONFIG = {
    "max_nesting_depth": DEFAULT_MAX_DEPTH,
    "rows": DEFAULT_ROWS,
    "cols": DEFAULT_COLS,
    "logging_enabled": True,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

_INT_KEYS = ("max_nesting_depth", "rows", "cols", "logging_tail_bytes")


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``sheetcalc.yaml``, with defaults.

    Args:
        project_dir: Root of the sheetcalc project.

    Returns:
        Merged configuration dict.  Unknown keys are kept as-is.

    Raises:
        SheetConfigError: If the file is not a YAML mapping or a numeric
            setting is not a positive integer, or ``max_nesting_depth``
            exceeds ``MAX_NESTING_DEPTH``.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = Path(project_dir) / CONFIG_FILENAME
    if config_path.exists():
        try:
            user_config = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise SheetConfigError(f"{config_path}: {exc}") from exc
        if not isinstance(user_config, dict):
            raise SheetConfigError(f"{config_path}: expected a mapping at top level")
        config.update(user_config)

    for key in _INT_KEYS:
        value = config[key]
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise SheetConfigError(f"{key} must be a positive integer, got {value!r}")
    if config["max_nesting_depth"] > MAX_NESTING_DEPTH:
        raise SheetConfigError(
            f"max_nesting_depth must be at most {MAX_NESTING_DEPTH}, "
            f"got {config['max_nesting_depth']}"
        )

    return config
