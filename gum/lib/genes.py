"""
Rule records and gene libraries.

A gene is a named rule set. On disk it is a list of rule records:

    {
        "condition": {
            "currentState": "A",
            "priorState": "Ignored",
            "allConnectionsCount_GE": -1,
            "allConnectionsCount_LE": 5,
            "parentsCount_GE": -1,
            "parentsCount_LE": -1
        },
        "operation": {"kind": "GiveBirthConnected", "operandNodeState": "B"}
    }

Missing priorState/operandNodeState default to "Ignored", missing bounds to
-1 (unbounded). A gene library file groups genes by name:

    {"genes": {"star": [...], "chain": [...]}}

Usage:
    library = GeneLibrary.from_json("genes.json")
    machine.load_rule_set(library.rules("star"))
"""
import collections.abc
import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Union

from gum.core.errors import RuleSetLoadError
from gum.core.rules import ChangeTableItem, Operation, OperationCondition, UNBOUNDED
from gum.core.states import NodeState, OperationKind, parse_node_state

logger = logging.getLogger(__name__)

RuleRecord = Mapping[str, Any]

# Record key -> OperationCondition field; both spellings are found in gene files
_BOUND_KEYS = {
    "allConnectionsCount_GE": "connections_ge",
    "allConnectionsCount_LE": "connections_le",
    "connectionsCount_GE": "connections_ge",
    "connectionsCount_LE": "connections_le",
    "parentsCount_GE": "parents_ge",
    "parentsCount_LE": "parents_le",
}

BUNDLED_GENES = "demo_genes.json"


def _parse_bound(key: str, value: Any) -> int:
    if value is None:
        return UNBOUNDED
    if isinstance(value, bool) or not isinstance(value, int):
        raise RuleSetLoadError(f"{key} must be an integer, got {value!r}")
    if value < UNBOUNDED:
        raise RuleSetLoadError(f"{key} must be -1 (unbounded) or >= 0, got {value}")
    return value


def _section(record: RuleRecord, name: str) -> Mapping[str, Any]:
    section = record.get(name)
    if not isinstance(section, Mapping):
        raise RuleSetLoadError(f"Rule record needs a '{name}' object, got {section!r}")
    return section


def parse_rule_record(record: RuleRecord) -> ChangeTableItem:
    """
    Turn one rule record into a ChangeTableItem.

    Raises:
        RuleSetLoadError: On unknown kind or state names, bad bounds or
            missing sections
    """
    if not isinstance(record, Mapping):
        raise RuleSetLoadError(f"Rule record must be an object, got {type(record).__name__}")

    condition = _section(record, "condition")
    operation = _section(record, "operation")

    if "currentState" not in condition:
        raise RuleSetLoadError("Rule condition needs 'currentState'")
    if "kind" not in operation:
        raise RuleSetLoadError("Rule operation needs 'kind'")

    bounds = {}
    for key, field_name in _BOUND_KEYS.items():
        if key in condition:
            bounds[field_name] = _parse_bound(key, condition[key])

    return ChangeTableItem(
        condition=OperationCondition(
            current_state=parse_node_state(condition["currentState"]),
            prior_state=parse_node_state(condition.get("priorState", NodeState.Ignored)),
            **bounds,
        ),
        operation=Operation(
            kind=OperationKind.parse(operation["kind"]),
            operand=parse_node_state(operation.get("operandNodeState", NodeState.Ignored)),
        ),
    )


def parse_rule_set(rules: Iterable[Union[ChangeTableItem, RuleRecord]]) -> List[ChangeTableItem]:
    """
    Parse a whole rule set before anything is replaced.

    ChangeTableItems are passed through; records are parsed.

    Raises:
        RuleSetLoadError: Naming the position of the first bad record
    """
    if (isinstance(rules, (str, bytes)) or isinstance(rules, Mapping)
            or not isinstance(rules, collections.abc.Iterable)):
        raise RuleSetLoadError("A rule set must be a sequence of rules")

    items = []
    for position, rule in enumerate(rules):
        if isinstance(rule, ChangeTableItem):
            items.append(rule)
            continue
        try:
            items.append(parse_rule_record(rule))
        except RuleSetLoadError as exc:
            raise RuleSetLoadError(f"Rule {position}: {exc}") from exc
    return items


class GeneLibrary:
    """
    Named rule sets, as loaded from a gene library file.

    Records are kept raw and parsed on request, so one broken gene does not
    prevent loading the others.
    """

    def __init__(self, genes: Mapping[str, List[RuleRecord]]):
        self._genes: Dict[str, List[RuleRecord]] = {}
        for name, records in genes.items():
            self.register(name, records)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GeneLibrary":
        """Accepts {"genes": {name: [...]}} or a bare {name: [...]} mapping."""
        if not isinstance(data, Mapping):
            raise RuleSetLoadError("Gene library must be a JSON object")
        genes = data.get("genes", data)
        if not isinstance(genes, Mapping):
            raise RuleSetLoadError("'genes' must map gene names to rule lists")
        return cls(genes)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "GeneLibrary":
        """
        Load a gene library file.

        Raises:
            RuleSetLoadError: If the file is not valid JSON or has the wrong shape
            OSError: If the file cannot be read
        """
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise RuleSetLoadError(f"{path}: invalid JSON ({exc})") from exc
        library = cls.from_dict(data)
        logger.info("Loaded %d genes from %s", len(library), path)
        return library

    @classmethod
    def bundled(cls) -> "GeneLibrary":
        """The demo genes shipped with the package."""
        text = resources.files("gum.lib").joinpath("data").joinpath(BUNDLED_GENES).read_text(encoding="utf-8")
        return cls.from_dict(json.loads(text))

    def register(self, name: str, records: List[RuleRecord]) -> None:
        if not isinstance(name, str) or not name:
            raise RuleSetLoadError(f"Gene name must be a non-empty string, got {name!r}")
        if isinstance(records, (str, bytes)) or not isinstance(records, list):
            raise RuleSetLoadError(f"Gene '{name}' must be a list of rule records")
        self._genes[name] = list(records)

    def names(self) -> List[str]:
        return list(self._genes.keys())

    def get(self, name: str) -> List[RuleRecord]:
        """
        Raw records of a gene.

        Raises:
            KeyError: If no gene has this name
        """
        if name not in self._genes:
            raise KeyError(f"Unknown gene '{name}'. Available: {self.names()}")
        return list(self._genes[name])

    def rules(self, name: str) -> List[ChangeTableItem]:
        """Freshly parsed rules of a gene (new bookkeeping every call)."""
        try:
            return parse_rule_set(self.get(name))
        except RuleSetLoadError as exc:
            raise RuleSetLoadError(f"Gene '{name}': {exc}") from exc

    def __contains__(self, name: str) -> bool:
        return name in self._genes

    def __len__(self) -> int:
        return len(self._genes)
