# radsim/engine.py
from __future__ import annotations
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from .clock import LogicalClock, WallClock
from .config import RunCfg, SimCfg
from .observer import LevelObserver, ObserverCfg
from .state import SimulationState, StepResult

logger = logging.getLogger(__name__)


# ------------------------------- Helpers -------------------------------

def _sim_row(step: int, res: StepResult) -> Dict[str, Any]:
    return {
        "step": int(step),
        "time": float(res.time),
        "source_balance": float(res.source_balance),
        "environment_balance": float(res.environment_balance),
        "emitted": float(res.emitted),
        "status": res.status,
    }


def _level_rows(step: int, levels: np.ndarray) -> List[Dict[str, Any]]:
    return [
        {"step": int(step), "level": i + 1, "balance": float(v)}
        for i, v in enumerate(levels)
    ]


# ------------------------------ Engine ---------------------------------

class Engine:
    """
    Tick-driven driver around SimulationState.

    Every step:
      - read the next time from the clock and advance the state
      - buffer one 'simulation' row
    Every flush_every steps (and on the last step):
      - buffer a full 'levels' snapshot (when levels are enabled)
      - flush the recorder

    Stops when the source is depleted, max_steps is reached, or should_stop() returns True.
    """

    def __init__(
        self,
        sim_cfg: SimCfg,
        run_cfg: RunCfg,
        recorder=None,
        *,
        clock=None,
        rng: Optional[np.random.Generator] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.sim_cfg = sim_cfg
        self.run_cfg = run_cfg
        self.recorder = recorder
        if clock is None:
            clock = WallClock() if run_cfg.realtime else LogicalClock(step_ms=run_cfg.tick_ms)
        self.clock = clock
        self.should_stop = should_stop

        self.state = SimulationState(sim_cfg, now=self.clock.now(), rng=rng)
        self.observer: Optional[LevelObserver] = None
        if recorder is not None and run_cfg.log_every > 0:
            self.observer = LevelObserver(
                self.state.environment, ObserverCfg(log_every=run_cfg.log_every), recorder.run_dir
            )
        self.steps_done = 0

    # ------------------------------ Core loop ------------------------------

    def _next_time(self) -> float:
        if self.run_cfg.realtime:
            time.sleep(self.run_cfg.tick_ms / 1000.0)
            return self.clock.now()
        tick = getattr(self.clock, "tick", None)
        return tick() if tick is not None else self.clock.now()

    def _done(self) -> Optional[str]:
        if self.state.depleted:
            return "depleted"
        if self.run_cfg.max_steps is not None and self.steps_done >= self.run_cfg.max_steps:
            return "max_steps"
        if self.should_stop is not None and self.should_stop():
            return "stopped"
        return None

    def _checkpoint(self, step: int) -> None:
        if self.recorder is None:
            return
        levels = self.state.environment.levels
        if levels is not None:
            self.recorder.add("levels", _level_rows(step, levels))
        self.recorder.flush()

    def step(self) -> StepResult:
        """Advance one tick and buffer its records."""
        step = self.steps_done
        res = self.state.advance(self._next_time())
        self.steps_done += 1

        if self.recorder is not None:
            self.recorder.add("simulation", [_sim_row(step, res)])
        if self.observer is not None:
            self.observer.step(step)
        if self.steps_done % self.run_cfg.flush_every == 0:
            self._checkpoint(step)
        return res

    def run(self) -> Dict[str, Any]:
        """
        Execute ticks until a stop condition holds, then finalize outputs.
        Returns a summary of the run.
        """
        reason = self._done()
        last_checkpoint = -1
        while reason is None:
            res = self.step()
            if self.steps_done % self.run_cfg.flush_every == 0:
                last_checkpoint = self.steps_done
                logger.info("step=%d source=%.9g environment=%.9g",
                            self.steps_done, res.source_balance, res.environment_balance)
            reason = self._done()

        if self.steps_done > 0 and last_checkpoint != self.steps_done:
            self._checkpoint(self.steps_done - 1)

        src, env = self.state.source, self.state.environment
        summary = {
            "steps": self.steps_done,
            "reason": reason,
            "source_balance": float(src.balance),
            "environment_balance": float(env.balance),
            "initial_supply": float(src.initial_supply),
        }
        if self.observer is not None:
            self.observer.finalize()
        if self.recorder is not None:
            self.recorder.finalize()
        logger.info("Run finished after %d steps (%s)", self.steps_done, reason)
        return summary
