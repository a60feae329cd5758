# tests/test_runtime.py
"""
Tests for the LodaRuntime session façade and the module-level helpers.
"""

import logging

import pytest

from lodaengine import (
    LodaRuntime,
    RuntimeConfig,
    create_runtime,
    direct_dependencies,
    evaluate,
    evaluate_range,
    parse,
    step_cost,
    transitive_dependencies,
)
from lodaengine.config import LoopPolicy
from lodaengine.errors import (
    CyclicDependencyError,
    DivisionByZeroError,
    NonTerminatingError,
    SourceSpan,
    UnknownMnemonicError,
    UnresolvedDependencyError,
)
from lodaengine.store import DirectoryProgramStore, MemoryProgramStore
from tests.conftest import (
    DIVIDE_BY_ZERO_ASM,
    FIBONACCI_ASM,
    FIBONACCI_TERMS,
    MERSENNE_ASM,
    MERSENNE_TERMS,
    POWERS_OF_TWO_ASM,
    PRIMES_ASM,
    PRIMES_TERMS,
    SPIN_ASM,
    SQUARES_ASM,
    SQUARES_TERMS,
    asm,
    cycle_programs,
    library_programs,
    make_runtime,
    make_store,
    write_program_dir,
)

SLOW_POWERS_OF_TWO_ASM = asm("""
    mov $1,1
    lpb $0
      sub $0,1
      mul $1,2
    lpe
    mov $0,$1
""")


class TestLoading:

    def test_load_program_memoised(self, library_runtime):
        program = library_runtime.load_program(45)
        assert program.program_id == 45
        assert library_runtime.load_program(45) is program

    def test_missing_program(self, library_runtime):
        assert library_runtime.load_program_or_none(46) is None
        with pytest.raises(UnresolvedDependencyError):
            library_runtime.load_program(46)

    def test_parse_error_names_program(self):
        runtime = make_runtime({5: "mov $0,1\nfoo $0,1\n"})
        with pytest.raises(UnknownMnemonicError) as info:
            runtime.load_program(5)
        assert info.value.span.file == "A000005.asm"
        assert info.value.line == 2

    def test_default_store(self):
        runtime = LodaRuntime()
        assert isinstance(runtime.store, MemoryProgramStore)
        assert runtime.config == RuntimeConfig()


class TestEvaluation:

    def test_program_text(self, library_runtime):
        assert library_runtime.evaluate_range(FIBONACCI_ASM, 0, 10) == FIBONACCI_TERMS

    def test_program_id(self, library_runtime):
        assert library_runtime.evaluate_range(225, 0, 10) == MERSENNE_TERMS

    def test_nested_calls(self, library_runtime):
        # fib(2^n - 1) and fib(2^n + 1)
        assert library_runtime.evaluate_range(1000, 0, 5) == [0, 1, 2, 13, 610]
        assert library_runtime.evaluate_range(1001, 0, 4) == [1, 2, 5, 34]

    def test_primes_from_offset(self, library_runtime):
        program = parse(PRIMES_ASM)
        assert program.offset == 1
        assert library_runtime.evaluate_range(program, program.offset, 20) == PRIMES_TERMS

    def test_deterministic(self, library_runtime):
        first = [library_runtime.evaluate_with_steps(1001, n) for n in range(4)]
        second = [library_runtime.evaluate_with_steps(1001, n) for n in range(4)]
        assert first == second

    def test_evaluate_with_steps(self, library_runtime):
        result = library_runtime.evaluate_with_steps(POWERS_OF_TWO_ASM, 5)
        assert (result.value, result.steps) == (32, 3)

    def test_range_from_offset_is_explicit(self, library_runtime):
        assert library_runtime.evaluate_range(SQUARES_ASM, 1, 5) == SQUARES_TERMS

    def test_first_error_propagates(self, library_runtime):
        with pytest.raises(NonTerminatingError):
            library_runtime.evaluate_range(SPIN_ASM, 0, 3)

    def test_cycle_detected_before_running(self):
        runtime = make_runtime(cycle_programs())
        with pytest.raises(CyclicDependencyError) as info:
            runtime.evaluate(1, 0)
        assert info.value.cycle == [1, 2, 3, 1]
        assert len(runtime.cache) == 0

    def test_missing_callee(self):
        runtime = make_runtime({10: "seq $0,11\n"})
        with pytest.raises(UnresolvedDependencyError) as info:
            runtime.evaluate(10, 0)
        assert info.value.program_id == 11

    def test_callee_error_keeps_callee_location(self):
        runtime = make_runtime({500: "mov $1,0\ndiv $0,$1\n", 501: "add $0,1\nseq $0,500\n"})
        with pytest.raises(DivisionByZeroError) as info:
            runtime.evaluate(501, 1)
        assert info.value.span == SourceSpan("A000500.asm", 2)
        assert info.value.error_message.context["program_id"] == 500

    def test_rollback_policy(self, rollback_runtime):
        assert rollback_runtime.evaluate(SPIN_ASM, 5) == 5

    def test_callee_budget_is_per_call(self):
        runtime = make_runtime(library_programs(), step_budget=40)
        # fib(15) alone needs 82 steps
        with pytest.raises(NonTerminatingError):
            runtime.evaluate(1000, 4)


class TestStepCost:

    def test_straight_line(self, library_runtime):
        assert library_runtime.step_cost(POWERS_OF_TWO_ASM, 10) == 30

    def test_starts_at_offset(self, library_runtime):
        assert library_runtime.step_cost(SQUARES_ASM, 5) == 10

    def test_includes_callees(self, library_runtime):
        assert library_runtime.step_cost(225, 10) == 50


class TestCompare:

    def test_faster_candidate_wins(self, library_runtime):
        result = library_runtime.compare_programs(
            SLOW_POWERS_OF_TWO_ASM, POWERS_OF_TWO_ASM, 10
        )
        assert result.candidate_wins
        assert result.winner == "candidate"
        assert result.candidate_steps == 30
        assert result.installed_steps > 30
        assert result.terms_match
        assert result.reason == "candidate is faster"

    def test_slower_candidate_loses(self, library_runtime):
        result = library_runtime.compare_programs(
            POWERS_OF_TWO_ASM, SLOW_POWERS_OF_TWO_ASM, 10
        )
        assert not result.candidate_wins
        assert result.reason == "installed is faster"

    def test_tie_keeps_installed(self, library_runtime):
        result = library_runtime.compare_programs(79, POWERS_OF_TWO_ASM, 10)
        assert not result.candidate_wins
        assert result.reason == "tie"
        assert result.installed_steps == result.candidate_steps == 30

    def test_different_terms_reported(self, library_runtime):
        result = library_runtime.compare_programs(FIBONACCI_ASM, "mov $0,1", 10)
        assert result.candidate_wins
        assert not result.terms_match

    def test_failing_candidate_loses(self, library_runtime):
        result = library_runtime.compare_programs(45, DIVIDE_BY_ZERO_ASM, 10)
        assert not result.candidate_wins
        assert result.candidate_steps is None
        assert result.reason.startswith("candidate failed")

    def test_failing_installed_program(self, library_runtime):
        result = library_runtime.compare_programs(SPIN_ASM, "mov $0,0", 5)
        assert result.candidate_wins
        assert result.installed_steps is None
        assert result.reason.startswith("installed failed")

    def test_candidate_calling_itself(self, library_runtime):
        candidate = parse("seq $0,1001", program_id=45)
        result = library_runtime.compare_programs(45, candidate, 5)
        assert not result.candidate_wins
        assert "Circular dependency" in result.reason


class TestDependencies:

    def test_direct(self, library_runtime):
        assert library_runtime.direct_dependencies(1001) == {79, 45}

    def test_transitive_by_id(self, library_runtime):
        assert library_runtime.transitive_dependencies(1000) == {225, 79, 45}

    def test_transitive_of_text(self, library_runtime):
        assert library_runtime.transitive_dependencies("seq $0,1000") == {
            1000, 225, 79, 45,
        }

    def test_call_graph(self, library_runtime):
        graph = library_runtime.call_graph([1000])
        assert sorted(graph.nodes) == [45, 79, 225, 1000]

    def test_preflight(self, library_runtime):
        assert library_runtime.preflight(MERSENNE_ASM) == {79}
        assert library_runtime.resolver.is_validated(79)


class TestFactory:

    def test_create_runtime_with_directory(self, tmp_path):
        write_program_dir(tmp_path, library_programs())
        runtime = create_runtime(
            programs_dir=tmp_path,
            step_budget=1000,
            loop_policy=LoopPolicy.ROLLBACK,
            max_loop_iterations=50,
        )
        assert isinstance(runtime.store, DirectoryProgramStore)
        assert runtime.config.step_budget == 1000
        assert runtime.config.loop_policy is LoopPolicy.ROLLBACK
        assert runtime.vm.config is runtime.config
        assert runtime.evaluate_range(225, 0, 5) == MERSENNE_TERMS[:5]

    def test_invalid_config_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="lodaengine"):
            LodaRuntime(config=RuntimeConfig(step_budget=0))
        assert "RuntimeConfig: step_budget must be positive" in caplog.text

    def test_validate(self):
        assert RuntimeConfig().validate() == []
        warnings = RuntimeConfig(max_loop_iterations=0, max_value_bits=-1).validate()
        assert len(warnings) == 2


class TestModuleFunctions:

    def test_evaluate(self):
        assert evaluate(FIBONACCI_ASM, 10) == 55

    def test_evaluate_range_with_store(self):
        store = make_store(library_programs())
        assert evaluate_range(MERSENNE_ASM, 0, 5, store=store) == MERSENNE_TERMS[:5]

    def test_shared_runtime(self, library_runtime):
        evaluate_range(MERSENNE_ASM, 0, 5, runtime=library_runtime)
        evaluate_range(MERSENNE_ASM, 0, 5, runtime=library_runtime)
        assert library_runtime.cache.stats.hits == 5

    def test_step_cost(self):
        assert step_cost(POWERS_OF_TWO_ASM, 10) == 30

    def test_dependencies(self):
        store = make_store(library_programs())
        assert direct_dependencies(parse(MERSENNE_ASM)) == {79}
        assert transitive_dependencies(1000, store=store) == {225, 79, 45}

    def test_missing_without_store(self):
        with pytest.raises(UnresolvedDependencyError):
            evaluate(MERSENNE_ASM, 1)
