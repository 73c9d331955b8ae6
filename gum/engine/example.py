"""
Graph unfolding: clean example.

Gene -> Change table -> Iterations -> Snapshot
"""
import logging
from typing import Optional

from gum.core.config import EngineConfig, GUMConfig, RunnerConfig
from gum.core.snapshot import GraphSnapshot
from gum.engine.machine import GraphUnfoldingMachine
from gum.engine.runner import UnfoldingRunner
from gum.lib.genes import GeneLibrary
from gum.logging_config import setup_logging

logger = logging.getLogger(__name__)


def run_unfolding(
    gene: str = "star",
    iterations: int = 10,
    genes_path: Optional[str] = None,
    config: Optional[GUMConfig] = None,
) -> GraphSnapshot:
    """Unfold a single seed node with one gene and print the outcome."""
    config = config or GUMConfig(engine=EngineConfig(), runner=RunnerConfig(stop_when_stable=True))
    setup_logging(config.log_level)

    # Rules
    library = GeneLibrary.from_json(genes_path) if genes_path else GeneLibrary.bundled()
    machine = GraphUnfoldingMachine(config=config.engine)
    machine.load_rule_set(library.rules(gene))

    # Run
    print(f"Unfolding gene '{gene}' for up to {iterations} iterations...")
    runner = UnfoldingRunner(machine, config.runner)
    reports = runner.run(iterations)

    # Results
    snapshot = machine.snapshot()
    print(f"\n{machine.status()}")
    print(f"Births: {sum(r.births for r in reports)} | Deletions: {sum(r.deletions for r in reports)}")
    counts = snapshot.to_dataframe()["state"].value_counts()
    for state, count in counts.items():
        print(f"State {state}: {count}")

    return snapshot


if __name__ == "__main__":
    run_unfolding()
