# lodaengine/store.py
"""
Program stores.

A store maps a program id to its assembly text and knows nothing about
parsing. The runtime only needs :meth:`ProgramStore.load`; a missing
program is ``None``, never an exception.

Layout of :class:`DirectoryProgramStore`::

    root/000/A000045.asm
    root/010/A010051.asm
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Protocol, Union, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ProgramStore(Protocol):
    """Source of program texts by id."""

    def load(self, program_id: int) -> Optional[str]: ...


class MemoryProgramStore:
    """Dict-backed store, mostly for tests and embedding."""

    def __init__(self, programs: Optional[Mapping[int, str]] = None) -> None:
        self._programs: Dict[int, str] = dict(programs or {})

    def add(self, program_id: int, text: str) -> None:
        self._programs[program_id] = text

    def load(self, program_id: int) -> Optional[str]:
        return self._programs.get(program_id)

    def ids(self) -> Iterator[int]:
        return iter(sorted(self._programs))

    def __contains__(self, program_id: object) -> bool:
        return program_id in self._programs

    def __len__(self) -> int:
        return len(self._programs)


class DirectoryProgramStore:
    """Programs laid out as ``root/{id // 1000:03}/A{id:06}.asm``."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)
        self.read_success = 0
        self.read_error = 0
        self._lock = threading.Lock()

    def path_for(self, program_id: int) -> Path:
        return self.root / f"{program_id // 1000:03d}" / f"A{program_id:06d}.asm"

    def load(self, program_id: int) -> Optional[str]:
        path = self.path_for(program_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No program file %s", path)
            with self._lock:
                self.read_error += 1
            return None
        logger.debug("Read %s (%d bytes)", path, len(text))
        with self._lock:
            self.read_success += 1
        return text

    def ids(self) -> Iterator[int]:
        """Ids of every ``A*.asm`` file under the root, ascending."""
        found = []
        for path in self.root.glob("[0-9][0-9][0-9]/A*.asm"):
            digits = path.stem[1:]
            if digits.isdigit():
                found.append(int(digits))
        return iter(sorted(found))

    def metrics(self) -> Dict[str, int]:
        with self._lock:
            return {"read_success": self.read_success, "read_error": self.read_error}


__all__ = ["ProgramStore", "MemoryProgramStore", "DirectoryProgramStore"]
