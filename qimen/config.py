"""
Engine configuration.

One frozen EngineConfig is threaded through every entry point. Values can
be overridden from QIMEN_* environment variables via EngineConfig.from_env().
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from qimen.astro_calendar import CivilTime
from qimen.errors import ConfigurationError

OUTER_PALACES = (1, 2, 3, 4, 6, 7, 8, 9)
DECADE_HEAD_SOURCES = ("day", "hour")
HIDDEN_HOUR_STEM_RULES = ("hour_decade", "decade_head")


@dataclass(frozen=True)
class EngineConfig:
    civil: CivilTime = field(default_factory=CivilTime)
    # Outer palace the center palace is attached to for rotation math
    attachment_palace: int = 2
    # Pillar the decade head is derived from
    decade_head_source: str = "day"
    # Where a 甲 hour stem is looked up on the earth layer:
    #   hour_decade: the hiding stem of the hour pillar's own decade
    #   decade_head: the hiding stem of the board's decade head
    hidden_hour_stem_rule: str = "hour_decade"
    ephe_path: Optional[str] = None
    decade_count: int = 9
    years_before: int = 5
    years_after: int = 9

    def __post_init__(self):
        if self.attachment_palace not in OUTER_PALACES:
            raise ConfigurationError(
                f"attachment_palace must be an outer palace, got {self.attachment_palace}")
        if self.decade_head_source not in DECADE_HEAD_SOURCES:
            raise ConfigurationError(f"unknown decade_head_source: {self.decade_head_source!r}")
        if self.hidden_hour_stem_rule not in HIDDEN_HOUR_STEM_RULES:
            raise ConfigurationError(f"unknown hidden_hour_stem_rule: {self.hidden_hour_stem_rule!r}")
        if self.decade_count < 1 or self.years_before < 0 or self.years_after < 0:
            raise ConfigurationError("timeline sizes must be non-negative")
        if not -14 <= self.civil.utc_offset_hours <= 14:
            raise ConfigurationError(f"utc offset out of range: {self.civil.utc_offset_hours}")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create a config from environment variables, defaults for anything unset."""
        try:
            return cls(
                civil=CivilTime(float(os.getenv("QIMEN_UTC_OFFSET", "8"))),
                attachment_palace=int(os.getenv("QIMEN_ATTACHMENT_PALACE", "2")),
                decade_head_source=os.getenv("QIMEN_DECADE_HEAD_SOURCE", "day"),
                hidden_hour_stem_rule=os.getenv("QIMEN_HIDDEN_HOUR_STEM_RULE", "hour_decade"),
                ephe_path=os.getenv("QIMEN_EPHE_PATH") or None,
            )
        except ValueError as exc:
            if isinstance(exc, ConfigurationError):
                raise
            raise ConfigurationError(f"invalid QIMEN_* environment value: {exc}") from exc


DEFAULT_CONFIG = EngineConfig()
