"""
Continuous run loop around a GraphUnfoldingMachine.

The machine only knows single iterations. UnfoldingRunner adds:
- step(): one iteration plus an execution log entry
- run(n): synchronous loop (optionally stopping once nothing fires)
- start(cadence_ms) / stop(): background loop on a fixed cadence
- save_log() / get_history_dataframe(): per-iteration history

Every iteration and every control call (load_rule_set, reset_graph) runs
under one lock, so a stop request or a rule-set swap only ever lands between
two iterations, never inside one.

Example:
    runner = UnfoldingRunner(machine)
    runner.start(cadence_ms=500)
    ...
    runner.stop()
    df = runner.get_history_dataframe()
"""
import json
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from gum.core.config import RunnerConfig
from gum.core.errors import RunnerStateError
from gum.core.snapshot import GraphSnapshot
from .machine import GraphUnfoldingMachine, IterationReport, RuleLike

logger = logging.getLogger(__name__)


class UnfoldingRunner:
    def __init__(self, machine: GraphUnfoldingMachine, config: Optional[RunnerConfig] = None):
        self.machine = machine
        self.config = config if config is not None else RunnerConfig()
        self.execution_log: List[Dict[str, Any]] = []

        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None

    # --- single steps ---

    def step(self) -> IterationReport:
        """
        Run one iteration and log it.

        Listeners are called after the log entry is written, so a listener
        that raises or stops the runner never loses the iteration.
        """
        with self._lock:
            report = self.machine.run_one_iteration(notify=False)
            entry = report.as_dict()
            entry["timestamp"] = datetime.now().isoformat()
            entry["status"] = self.machine.status()
            self.execution_log.append(entry)
            limit = self.config.max_log_entries
            if limit is not None and len(self.execution_log) > limit:
                del self.execution_log[:-limit]

            logger.info("Iteration %d | %s | fired %d", report.iteration, entry["status"], report.fired)
            self.machine.publish()
        return report

    def run(self, num_iterations: int) -> List[IterationReport]:
        """
        Run up to num_iterations iterations in the calling thread.

        Stops early after an iteration where no rule fired if
        config.stop_when_stable is set.
        """
        if self.is_running:
            raise RunnerStateError("run() called while the background loop is running")
        reports = []
        for _ in range(num_iterations):
            report = self.step()
            reports.append(report)
            if self.config.stop_when_stable and report.is_stable:
                logger.info("Stable after %d iterations, stopping", report.iteration)
                break
        return reports

    # --- continuous mode ---

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, cadence_ms: Optional[int] = None) -> None:
        """
        Run iterations in a background thread, one every cadence_ms.

        Raises:
            RunnerStateError: If the loop is already running
        """
        if self.is_running:
            raise RunnerStateError("Runner is already running")
        cadence_ms = self.config.cadence_ms if cadence_ms is None else cadence_ms
        if cadence_ms < 0:
            raise ValueError(f"cadence_ms must be >= 0, got {cadence_ms}")

        self._stop_event.clear()
        self._error = None
        self._thread = threading.Thread(
            target=self._loop,
            args=(cadence_ms / 1000.0,),
            name="gum-runner",
            daemon=True,
        )
        self._thread.start()
        logger.info("Runner started (cadence %d ms)", cadence_ms)

    def _loop(self, interval_s: float) -> None:
        while not self._stop_event.wait(interval_s):
            try:
                report = self.step()
            except Exception as exc:
                # Re-raised to the caller by stop()
                self._error = exc
                logger.exception("Runner loop failed")
                return
            if self.config.stop_when_stable and report.is_stable:
                logger.info("Stable after %d iterations, loop finished", report.iteration)
                return

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Cancel the cadence. An iteration already in progress completes first.

        Raises:
            Exception: Whatever made the background loop fail, if it did
        """
        self._stop_event.set()
        thread = self._thread
        if thread is threading.current_thread():
            # Called from the loop itself (a listener): it exits after this step
            logger.info("Runner stop requested from the loop thread")
            return
        if thread is not None:
            thread.join(timeout)
            if not thread.is_alive():
                self._thread = None
        logger.info("Runner stopped after %d iterations", self.machine.iterations)

        if self._error is not None:
            error, self._error = self._error, None
            raise error

    def __enter__(self) -> "UnfoldingRunner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.is_running:
            self.stop()

    # --- control between iterations ---

    def load_rule_set(self, rules: Iterable[RuleLike]) -> int:
        with self._lock:
            return self.machine.load_rule_set(rules)

    def reset_graph(self, seed_state=None) -> GraphSnapshot:
        with self._lock:
            return self.machine.reset_graph(seed_state)

    def snapshot(self) -> GraphSnapshot:
        with self._lock:
            return self.machine.snapshot()

    # --- history ---

    def save_log(self, path: Optional[str] = None) -> str:
        path = path or f"unfolding_log_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
        with self._lock:
            entries = list(self.execution_log)
        with open(path, "w") as f:
            json.dump(entries, f, indent=2)
        return path

    def get_history_dataframe(self) -> pd.DataFrame:
        """One row per logged iteration."""
        with self._lock:
            entries = list(self.execution_log)
        if not entries:
            return pd.DataFrame()
        return pd.DataFrame(entries)
