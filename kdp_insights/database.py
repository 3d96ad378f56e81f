"""
KDP Insights - Local persistence
Full portfolio state (catalog, ledger, import log, settings) in one JSON file,
plus backup export/restore in the same shape.
"""

import os
import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .errors import InvalidBackupFormat
from .models import PortfolioState

logger = logging.getLogger(__name__)

STATE_PATH = os.getenv(
    "KDP_INSIGHTS_STATE_PATH",
    os.path.join(os.path.expanduser("~"), ".kdp-insights", "state.json"),
)

BACKUP_PREFIX = "kdp-insights-backup"


class StateStore:
    """Load/save/reset the single live portfolio state."""

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path or STATE_PATH)

    def load(self) -> PortfolioState:
        """Current state; defaults when nothing is stored or the file is unreadable."""
        if not self.path.exists():
            return PortfolioState()
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            return PortfolioState.model_validate(payload)
        except (OSError, ValueError, PydanticValidationError) as e:
            logger.warning(f"Could not read state file {self.path}, starting empty: {e}")
            return PortfolioState()

    def save(self, state: PortfolioState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(state.to_payload(), indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
        logger.info(
            f"Saved state to {self.path}: {len(state.books)} books, "
            f"{len(state.sales)} sales records, {len(state.imports)} imports"
        )

    def reset(self) -> None:
        if self.path.exists():
            self.path.unlink()
        logger.info(f"Reset state at {self.path}")


def export_backup(state: PortfolioState, directory: Union[str, Path], today: Optional[date] = None) -> Path:
    """Write a dated backup file into directory and return its path."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / f"{BACKUP_PREFIX}-{(today or date.today()).isoformat()}.json"
    target.write_text(json.dumps(state.to_payload(), indent=2), encoding="utf-8")
    logger.info(f"Exported backup to {target}")
    return target


def validate_backup(payload: Any) -> PortfolioState:
    if not isinstance(payload, dict) or not all(
        isinstance(payload.get(key), list) for key in ("books", "sales", "imports")
    ):
        raise InvalidBackupFormat()

    data: Dict[str, Any] = dict(payload)
    if not isinstance(data.get("settings"), dict):
        data["settings"] = {}

    try:
        return PortfolioState.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidBackupFormat(f"Invalid backup format: {e.error_count()} invalid record(s).") from e


def load_backup(content: Union[str, bytes]) -> PortfolioState:
    """Parse and validate a backup payload into a fresh state."""
    try:
        payload = json.loads(content)
    except ValueError as e:
        raise InvalidBackupFormat("Invalid backup format: not valid JSON.") from e
    return validate_backup(payload)
