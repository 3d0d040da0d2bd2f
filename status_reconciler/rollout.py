"""
Rollout flags — parsed once, passed everywhere.

Operators set DUAL_WRITE_ENABLED, SAFE_MODE and READ_FROM_UNIFIED as
"true"/"false" strings.  ``RolloutFlags.from_config(app.config)`` turns them
into an immutable value handed to every component constructor; nothing
below this module reads the environment.

Usage:
    flags = RolloutFlags.from_config(current_app.config)
    if flags.dual_write_enabled:
        ...
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum

from status_reconciler.core.exceptions import ConfigurationError


class RolloutPhase(str, Enum):
    LEGACY_ONLY = "LEGACY_ONLY"
    DUAL_WRITE = "DUAL_WRITE"
    READ_FROM_UNIFIED = "READ_FROM_UNIFIED"
    UNIFIED_PRIMARY = "UNIFIED_PRIMARY"
    UNIFIED_ONLY = "UNIFIED_ONLY"


def parse_flag(key: str, raw, default: bool) -> bool:
    """Interpret a "true"/"false" flag string; anything else is rejected."""
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    raise ConfigurationError(key, raw)


@dataclass(frozen=True)
class RolloutFlags:
    dual_write_enabled: bool = False
    safe_mode: bool = True
    read_from_unified: bool = False

    @classmethod
    def from_config(cls, cfg) -> RolloutFlags:
        return cls(
            dual_write_enabled=parse_flag("DUAL_WRITE_ENABLED", cfg.get("DUAL_WRITE_ENABLED"), False),
            safe_mode=parse_flag("SAFE_MODE", cfg.get("SAFE_MODE"), True),
            read_from_unified=parse_flag("READ_FROM_UNIFIED", cfg.get("READ_FROM_UNIFIED"), False),
        )

    @property
    def phase(self) -> RolloutPhase:
        if not self.read_from_unified:
            return RolloutPhase.DUAL_WRITE if self.dual_write_enabled else RolloutPhase.LEGACY_ONLY
        if self.safe_mode:
            return RolloutPhase.READ_FROM_UNIFIED
        # safe-mode off: legacy writes continue until dual-write is switched off
        return RolloutPhase.UNIFIED_PRIMARY if self.dual_write_enabled else RolloutPhase.UNIFIED_ONLY

    def to_dict(self) -> dict:
        out = {k.upper(): ("true" if v else "false") for k, v in asdict(self).items()}
        out["phase"] = self.phase.value
        return out
