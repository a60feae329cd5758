# tests/test_store.py
"""
Tests for the in-memory and directory program stores.
"""

from lodaengine.store import DirectoryProgramStore, MemoryProgramStore, ProgramStore
from tests.conftest import FIBONACCI_ASM, library_programs, write_program_dir


class TestMemoryStore:

    def test_load(self):
        store = MemoryProgramStore({45: FIBONACCI_ASM})
        assert store.load(45) == FIBONACCI_ASM
        assert store.load(46) is None

    def test_add(self):
        store = MemoryProgramStore()
        store.add(7, "mov $0,7\n")
        assert 7 in store
        assert len(store) == 1
        assert list(store.ids()) == [7]

    def test_copies_mapping(self):
        programs = {1: "mov $0,1\n"}
        store = MemoryProgramStore(programs)
        programs[2] = "mov $0,2\n"
        assert 2 not in store

    def test_protocol(self):
        assert isinstance(MemoryProgramStore(), ProgramStore)


class TestDirectoryStore:

    def test_layout(self, tmp_path):
        store = DirectoryProgramStore(tmp_path)
        assert store.path_for(45) == tmp_path / "000" / "A000045.asm"
        assert store.path_for(10051) == tmp_path / "010" / "A010051.asm"
        assert store.path_for(1234567) == tmp_path / "1234" / "A1234567.asm"

    def test_load_and_metrics(self, tmp_path):
        store = write_program_dir(tmp_path, {45: FIBONACCI_ASM})
        assert store.load(45) == FIBONACCI_ASM
        assert store.load(46) is None
        assert store.metrics() == {"read_success": 1, "read_error": 1}

    def test_ids(self, tmp_path):
        store = write_program_dir(tmp_path, library_programs())
        (tmp_path / "000" / "notes.txt").write_text("x", encoding="utf-8")
        assert list(store.ids()) == [45, 79, 225, 1000, 1001]

    def test_protocol(self, tmp_path):
        assert isinstance(DirectoryProgramStore(tmp_path), ProgramStore)
