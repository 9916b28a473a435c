import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple

from matrixbuild.engine.axes import AxisRegistry
from matrixbuild.engine.constraints import ConstraintEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Configuration:
    """One value per primary axis (in declared axis order) plus its derived attributes."""

    selections: Tuple[Tuple[str, str], ...]
    derived: Tuple[Tuple[str, str], ...] = field(default=())

    def value(self, axis: str) -> Optional[str]:
        for name, member in self.selections:
            if name == axis:
                return member
        return None

    def get(self, derived_name: str) -> Optional[str]:
        for name, value in self.derived:
            if name == derived_name:
                return value
        return None

    def matches(self, selection: Dict[str, str]) -> bool:
        return all(self.value(axis) == member for axis, member in selection.items())

    def as_dict(self) -> Dict[str, str]:
        data = dict(self.selections)
        data.update(dict(self.derived))
        return data

    def label(self) -> str:
        return " ".join(f"{axis}={member}" for axis, member in self.selections)


class CombinationResolver:
    """Enumerates the valid configurations of a registry filtered by a constraint engine."""

    def raw_count(self, registry: AxisRegistry) -> int:
        count = 1
        for axis in registry.axes:
            count *= len(axis.members)
        return count if registry.axes else 0

    def candidates(self, registry: AxisRegistry) -> Iterator[Configuration]:
        axes = registry.axes
        if not axes:
            return
        names = [axis.name for axis in axes]
        # itertools.product varies the last axis fastest: first declared axis is outermost.
        for combo in itertools.product(*(axis.members for axis in axes)):
            yield Configuration(selections=tuple(zip(names, combo)))

    def resolve(self, registry: AxisRegistry, engine: ConstraintEngine) -> Iterator[Configuration]:
        """Lazily yield valid configurations in deterministic order.

        Holds no state between calls: calling again starts over and produces
        the same sequence for the same registry and engine.
        """
        for candidate in self.candidates(registry):
            if not engine.is_valid(candidate):
                logger.debug(f"Excluded candidate: {candidate.label()}")
                continue
            derived = []
            for axis, member in candidate.selections:
                derived.extend(registry.derived_for(axis, member).items())
            yield Configuration(selections=candidate.selections, derived=tuple(derived))


def resolve(registry: AxisRegistry, engine: ConstraintEngine) -> Iterator[Configuration]:
    return CombinationResolver().resolve(registry, engine)
