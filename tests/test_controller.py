"""
Tests for the convergence state machine and the iteration driver.
"""

import numpy as np
import pytest

from spindle_controller import (
    HISTORY_LIMIT,
    ControllerPhase,
    ControllerSettings,
    ControllerStateError,
    ConvergenceState,
    ConvergenceWarning,
    HistoryEntry,
    IterationDriver,
    advance,
    append_history,
    initial_state,
    reset_state,
    start_iteration,
    stop_iteration,
)
from spindle_jacobian import compute_output, stokes_error

H = np.array([1.0, 1.0, 0.0, 0.0])
START = (0.3, 1.2, 0.9, 0.5)


def _stopped_at(retardances):
    return ConvergenceState(phase=ControllerPhase.STOPPED, retardances=tuple(retardances))


class TestSettings:

    def test_defaults(self):
        cfg = ControllerSettings()
        assert cfg.mu == 0.5
        assert cfg.epsilon == 1e-4
        assert cfg.tolerance == 0.01
        assert cfg.history_limit == HISTORY_LIMIT == 200

    @pytest.mark.parametrize("kwargs", [
        {"mu": 0.0},
        {"mu": 1.5},
        {"epsilon": 0.0},
        {"tolerance": -1.0},
        {"history_limit": 0},
        {"method": "secant"},
        {"inverse": "lm"},
    ])
    def test_invalid_settings_rejected(self, kwargs):
        with pytest.raises(ValueError):
            ControllerSettings(**kwargs)


class TestTransitions:

    def test_initial_state(self):
        state = initial_state()
        assert state.phase is ControllerPhase.IDLE
        assert state.retardances == (0.0, 0.0, 0.0, 0.0)
        assert state.step_count == 0
        assert state.history == ()
        assert not state.converged

    def test_reset_seeds_history_with_initial_error(self):
        state = reset_state(H, "RHC", np.random.default_rng(0))
        assert state.phase is ControllerPhase.IDLE
        assert all(0.0 <= r <= np.pi for r in state.retardances)
        expected = stokes_error(compute_output(H, state.retardances), [1, 0, 0, 1])
        assert state.history == (HistoryEntry(0, expected),)
        assert state.error == pytest.approx(expected)

    def test_start_stop_cycle(self):
        state = start_iteration(initial_state())
        assert state.phase is ControllerPhase.RUNNING
        state = stop_iteration(state)
        assert state.phase is ControllerPhase.STOPPED
        assert start_iteration(state).phase is ControllerPhase.RUNNING

    def test_stop_when_not_running_is_noop(self):
        state = initial_state()
        assert stop_iteration(state) is state

    def test_manual_step_pauses(self):
        state, _ = advance(initial_state(START), H, "RHC")
        assert state.phase is ControllerPhase.STOPPED
        assert state.step_count == 1

    def test_running_step_commits_state(self):
        state = start_iteration(initial_state(START))
        new_state, result = advance(state, H, "RHC")
        assert new_state.phase is ControllerPhase.RUNNING
        assert new_state.retardances == tuple(result.retardances)
        assert new_state.history == (HistoryEntry(1, result.error),)
        assert new_state.error == result.error
        assert state.retardances == START

    def test_converged_is_terminal(self):
        state = start_iteration(initial_state(START))
        for _ in range(200):
            state, _ = advance(state, H, "RHC")
            if state.converged:
                break
        assert state.phase is ControllerPhase.CONVERGED
        assert state.error < 0.01
        assert start_iteration(state) is state
        assert stop_iteration(state) is state
        with pytest.raises(ControllerStateError):
            advance(state, H, "RHC")

    def test_reset_clears_convergence(self):
        state = ConvergenceState(phase=ControllerPhase.CONVERGED, converged=True)
        assert not state.running
        fresh = reset_state(H, "LHC", np.random.default_rng(1))
        assert not fresh.converged
        assert fresh.phase is ControllerPhase.IDLE


class TestHistory:

    def test_append_history_evicts_oldest(self):
        history = tuple(HistoryEntry(i, 1.0) for i in range(3))
        out = append_history(history, HistoryEntry(3, 0.5), limit=3)
        assert [e.step for e in out] == [1, 2, 3]

    def test_history_capped_at_limit(self):
        # The all-zero start never moves, so the run cannot converge.
        state = start_iteration(initial_state())
        for _ in range(HISTORY_LIMIT + 50):
            state, _ = advance(state, H, "RHC")
        assert state.step_count == HISTORY_LIMIT + 50
        assert len(state.history) == HISTORY_LIMIT
        steps = [e.step for e in state.history]
        assert steps == list(range(51, HISTORY_LIMIT + 51))
        assert not state.converged

    def test_custom_history_limit(self):
        cfg = ControllerSettings(history_limit=5)
        state = start_iteration(initial_state())
        for _ in range(8):
            state, _ = advance(state, H, "RHC", cfg)
        assert [e.step for e in state.history] == [4, 5, 6, 7, 8]


class TestIterationDriver:

    def test_tick_requires_running(self):
        driver = IterationDriver(H, state=_stopped_at(START))
        assert driver.tick() is None
        assert driver.state.step_count == 0

    def test_start_resets_untouched_controller(self):
        driver = IterationDriver(H, rng=np.random.default_rng(9))
        state = driver.start()
        assert state.phase is ControllerPhase.RUNNING
        assert len(state.history) == 1
        assert state.retardances != (0.0, 0.0, 0.0, 0.0)

    def test_run_converges(self):
        driver = IterationDriver(H, "RHC", state=_stopped_at(START))
        final = driver.run(max_steps=200)
        assert final.phase is ControllerPhase.CONVERGED
        assert final.converged
        assert driver.tick() is None

    def test_run_warns_when_budget_exhausted(self):
        driver = IterationDriver(H, "RHC", state=_stopped_at((0.0, 0.0, 0.0, 0.0)))
        with pytest.warns(ConvergenceWarning):
            final = driver.run(max_steps=5)
        assert final.phase is ControllerPhase.STOPPED
        assert final.step_count == 5
        assert len(final.history) == 5

    def test_stop_preserves_history(self):
        driver = IterationDriver(H, "RHC", state=_stopped_at(START))
        driver.start()
        driver.tick()
        driver.tick()
        state = driver.stop()
        assert state.phase is ControllerPhase.STOPPED
        assert state.step_count == 2
        assert driver.tick() is None

    def test_reset_while_running(self):
        driver = IterationDriver(H, "RHC", rng=np.random.default_rng(4),
                                 state=_stopped_at(START))
        driver.start()
        driver.tick()
        state = driver.reset()
        assert state.phase is ControllerPhase.IDLE
        assert state.step_count == 0
        assert len(state.history) == 1
        assert driver.tick() is None

    def test_set_target_resets(self):
        driver = IterationDriver(H, "RHC", rng=np.random.default_rng(4),
                                 state=_stopped_at(START))
        state = driver.set_target("LHC")
        np.testing.assert_array_equal(driver.target, [1.0, 0.0, 0.0, -1.0])
        assert state.phase is ControllerPhase.IDLE
        assert len(state.history) == 1

    def test_set_input_keeps_progress(self):
        driver = IterationDriver(H, "RHC", state=_stopped_at(START))
        driver.set_input([1.0, 0.0, 1.0, 0.0])
        np.testing.assert_array_equal(driver.input_state, [1.0, 0.0, 1.0, 0.0])
        assert driver.state.retardances == START
