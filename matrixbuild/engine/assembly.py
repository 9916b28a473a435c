import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from matrixbuild.engine.axes import AxisRegistry
from matrixbuild.engine.constraints import ConstraintEngine
from matrixbuild.engine.features import FeatureSet, FeatureStringBuilder
from matrixbuild.engine.resolver import CombinationResolver, Configuration
from matrixbuild.engine.tolerance import ToleranceClassifier, ToleranceEntry
from matrixbuild.errors import UnknownMemberError
from matrixbuild.validation.cross import CrossValidator
from shared_libs.config_models.matrix_models import MatrixDefinition

logger = logging.getLogger(__name__)


@dataclass
class MatrixContext:
    """Everything resolution needs, initialized once and read-only afterwards."""

    definition: MatrixDefinition
    registry: AxisRegistry
    engine: ConstraintEngine
    builder: FeatureStringBuilder
    classifier: ToleranceClassifier
    resolver: CombinationResolver

    def check_selection(self, selection: Dict[str, str]) -> None:
        """Raise if ``selection`` names an axis or member the registry does not know."""
        for axis, member in selection.items():
            if member not in self.registry.members_of(axis):
                raise UnknownMemberError(
                    f"Axis '{axis}' has no member '{member}' (known: {list(self.registry.members_of(axis))})."
                )

    def configurations(self, only: Optional[Dict[str, str]] = None) -> Iterator[Configuration]:
        """Valid configurations matching ``only``. Filters are checked before resolution starts."""
        if only:
            self.check_selection(only)
        return self._filtered(only)

    def _filtered(self, only: Optional[Dict[str, str]]) -> Iterator[Configuration]:
        for configuration in self.resolver.resolve(self.registry, self.engine):
            if only and not configuration.matches(only):
                continue
            yield configuration

    def feature_set(self, configuration: Configuration) -> FeatureSet:
        return self.builder.build(configuration)

    def target_of(self, configuration: Configuration) -> Optional[str]:
        return configuration.get(self.definition.build.target_attribute)

    def toolchain_of(self, configuration: Configuration) -> Optional[str]:
        return configuration.get(self.definition.build.toolchain_attribute)

    def configuration_for(self, selection: Dict[str, str]) -> Configuration:
        """Build the configuration for an explicit selection, even if it is excluded."""
        ordered = []
        for axis in self.registry.axes:
            member = selection.get(axis.name)
            if member is None:
                raise KeyError(f"Selection is missing axis '{axis.name}'")
            if member not in axis.members:
                raise KeyError(f"'{member}' is not a member of axis '{axis.name}'")
            ordered.append((axis.name, member))
        derived: List = []
        for axis, member in ordered:
            derived.extend(self.registry.derived_for(axis, member).items())
        return Configuration(selections=tuple(ordered), derived=tuple(derived))


def assemble(definition: MatrixDefinition, known_toolchains: Optional[Iterable[str]] = None) -> MatrixContext:
    """Cross-validate a definition and build the frozen registry/engine pair from it."""
    registry = AxisRegistry()
    for axis in definition.axes:
        registry.register_axis(axis.name, axis.members, axis.feature_prefix)

    CrossValidator(definition, known_toolchains).validate()

    for axis_name, mapping in definition.derived.items():
        registry.register_derived(axis_name, mapping)
    registry.freeze()

    engine = ConstraintEngine(registry)
    for entry in definition.exclude:
        (axis_a, value_a), (axis_b, value_b) = entry.items()
        engine.add_exclusion(axis_a, value_a, axis_b, value_b)
    engine.freeze()

    builder = FeatureStringBuilder(
        registry,
        baseline=definition.features.baseline,
        derived_features=definition.features.derived,
        separator=definition.features.separator,
    )
    classifier = ToleranceClassifier(
        ToleranceEntry(selection=tuple(t.when.items()), reason=t.reason) for t in definition.tolerate
    )
    logger.info(
        f"Assembled matrix: {len(registry.axes)} axes, {len(engine.rules)} exclusions, "
        f"{len(classifier.entries)} tolerance entries"
    )
    return MatrixContext(
        definition=definition,
        registry=registry,
        engine=engine,
        builder=builder,
        classifier=classifier,
        resolver=CombinationResolver(),
    )
