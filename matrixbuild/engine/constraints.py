import logging
from typing import Dict, FrozenSet, List, Optional, Set, Tuple, TYPE_CHECKING

from matrixbuild.errors import ConfigurationError, UnknownAxisError, UnknownMemberError

if TYPE_CHECKING:
    from matrixbuild.engine.axes import AxisRegistry
    from matrixbuild.engine.resolver import Configuration

logger = logging.getLogger(__name__)

Selection = Tuple[str, str]
ExclusionRule = FrozenSet[Selection]


class ConstraintEngine:
    """Pairwise incompatibility rules over axis selections.

    Each rule is indexed under both of its selections, so checking a candidate
    is a handful of set lookups regardless of how many rules exist.
    """

    def __init__(self, registry: Optional["AxisRegistry"] = None):
        self.registry = registry
        self._index: Dict[Selection, Set[Selection]] = {}
        self._rules: List[ExclusionRule] = []
        self._frozen = False

    def _check_selection(self, axis: str, value: str) -> None:
        if self.registry is None:
            return
        if not self.registry.has_axis(axis):
            raise UnknownAxisError(f"Exclusion references unregistered axis '{axis}'.")
        if value not in self.registry.members_of(axis):
            raise UnknownMemberError(f"Exclusion references unknown member '{value}' of axis '{axis}'.")

    def add_exclusion(self, axis_a: str, value_a: str, axis_b: str, value_b: str) -> bool:
        """Register a forbidden pair. Returns False if the rule was already known."""
        if self._frozen:
            raise ConfigurationError("ConstraintEngine is frozen; exclusions cannot be added after initialization.")
        a: Selection = (axis_a, value_a)
        b: Selection = (axis_b, value_b)
        if a == b:
            raise ConfigurationError(f"Exclusion {axis_a}={value_a} cannot exclude itself.")
        if axis_a == axis_b:
            raise ConfigurationError(
                f"Exclusion {axis_a}={value_a} x {axis_b}={value_b} is on a single axis; "
                f"members of one axis never co-occur."
            )
        self._check_selection(axis_a, value_a)
        self._check_selection(axis_b, value_b)

        rule: ExclusionRule = frozenset((a, b))
        if b in self._index.get(a, set()):
            logger.debug(f"Ignoring duplicate exclusion {axis_a}={value_a} x {axis_b}={value_b}")
            return False
        self._index.setdefault(a, set()).add(b)
        self._index.setdefault(b, set()).add(a)
        self._rules.append(rule)
        return True

    def freeze(self) -> None:
        self._frozen = True

    @property
    def rules(self) -> List[ExclusionRule]:
        return list(self._rules)

    def excludes(self, a: Selection, b: Selection) -> bool:
        return b in self._index.get(a, ())

    def violations(self, configuration: "Configuration") -> List[ExclusionRule]:
        """Distinct rules whose both selections are present in ``configuration``."""
        selections = list(configuration.selections)
        found: List[ExclusionRule] = []
        for i, a in enumerate(selections):
            partners = self._index.get(a)
            if not partners:
                continue
            for b in selections[i + 1:]:
                if b in partners:
                    found.append(frozenset((a, b)))
        return found

    def is_valid(self, configuration: "Configuration") -> bool:
        selections = set(configuration.selections)
        for selection in configuration.selections:
            partners = self._index.get(selection)
            if partners and not partners.isdisjoint(selections):
                return False
        return True
