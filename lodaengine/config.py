# lodaengine/config.py
"""Runtime tuning knobs shared by the VM and the runtime façade."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List, Optional

from lodaengine.registers import DEFAULT_CAPACITY


class LoopPolicy(enum.Enum):
    """What a loop does when an iteration fails to decrease its range."""
    # restore the snapshot and leave the loop; raise when the loop can never
    # finish on its own
    GUARDED = "guarded"
    # always restore the snapshot and leave the loop
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class RuntimeConfig:
    """Tuning knobs for program evaluation."""
    step_budget: int = 5_000_000
    loop_policy: LoopPolicy = LoopPolicy.GUARDED
    max_loop_iterations: Optional[int] = None
    max_value_bits: Optional[int] = None
    max_register_index: int = DEFAULT_CAPACITY

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if self.step_budget <= 0:
            warnings.append("step_budget must be positive")
        if self.max_loop_iterations is not None and self.max_loop_iterations <= 0:
            warnings.append("max_loop_iterations must be positive")
        if self.max_value_bits is not None and self.max_value_bits <= 0:
            warnings.append("max_value_bits must be positive")
        if self.max_register_index <= 0:
            warnings.append("max_register_index must be positive")
        return warnings


__all__ = ["LoopPolicy", "RuntimeConfig"]
