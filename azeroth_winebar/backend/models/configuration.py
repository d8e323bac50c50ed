"""
Configuration Data Models

Snapshot of the Config Store handed from the store to the services.
"""

from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, field


@dataclass
class ConfigSnapshot:
    """Values read from the Config Store at one point in time."""
    prefix_path: Optional[Path] = None
    game_path: Optional[Path] = None
    default_runtime: Optional[str] = None
    first_run_done: bool = False
    install_state: Optional[str] = None

    def __post_init__(self):
        """Convert string paths to Path objects."""
        if isinstance(self.prefix_path, str):
            self.prefix_path = Path(self.prefix_path) if self.prefix_path else None
        if isinstance(self.game_path, str):
            self.game_path = Path(self.game_path) if self.game_path else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'prefix_path': str(self.prefix_path) if self.prefix_path else None,
            'game_path': str(self.game_path) if self.game_path else None,
            'default_runtime': self.default_runtime,
            'first_run_done': self.first_run_done,
            'install_state': self.install_state,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConfigSnapshot':
        return cls(
            prefix_path=data.get('prefix_path') or None,
            game_path=data.get('game_path') or None,
            default_runtime=data.get('default_runtime') or None,
            first_run_done=_truthy(data.get('first_run_done')),
            install_state=data.get('install_state') or None,
        )


@dataclass
class BackupResult:
    """Outcome of a Config Store backup."""
    backup_id: str
    copied: int
    failed: int
    failed_paths: list = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return self.failed > 0


def _truthy(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'done')
