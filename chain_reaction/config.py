"""
Configuration for a chain game deployment.

A config file is JSON with up to three sections, each optional:

    {"game": {...}, "database": {...}, "monitoring": {...}}

Missing keys fall back to the dataclass defaults; unknown keys are an error.
"""
import json
import os
from dataclasses import dataclass, asdict, field, fields


@dataclass
class GameConfig:
    """Deployment-time game parameters, fixed across lifecycles."""
    duration_decrease_ms: int = 60_000
    min_duration_ms: int = 60_000

    def __post_init__(self):
        if self.duration_decrease_ms < 0 or self.min_duration_ms < 0:
            raise ValueError("Durations cannot be negative")


@dataclass
class DatabaseConfig:
    path: str = "./chain_reaction_data"
    write_buffer_size: int = 4 * 1024 * 1024
    max_open_files: int = 100


@dataclass
class MonitoringConfig:
    # The metrics endpoint is only served when enabled.
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


def _section(section_cls, data: dict):
    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown {section_cls.__name__} keys: {sorted(unknown)}")
    return section_cls(**data)


@dataclass
class Config:
    game: GameConfig = field(default_factory=GameConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def default(cls) -> 'Config':
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        return cls(
            game=_section(GameConfig, data.get('game', {})),
            database=_section(DatabaseConfig, data.get('database', {})),
            monitoring=_section(MonitoringConfig, data.get('monitoring', {})),
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def to_file(self, path: str):
        """Write the config as JSON, creating parent directories."""
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        return asdict(self)
