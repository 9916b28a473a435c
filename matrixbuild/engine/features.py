from dataclasses import dataclass
from typing import Iterable, Tuple

from matrixbuild.engine.axes import AxisRegistry
from matrixbuild.engine.resolver import Configuration


@dataclass(frozen=True)
class FeatureSet:
    tokens: Tuple[str, ...]
    separator: str = ","

    @property
    def key(self) -> str:
        """Joined token string. Used as the reporting category and cache identity."""
        return self.separator.join(self.tokens)

    def __str__(self) -> str:
        return self.key

    def __iter__(self):
        return iter(self.tokens)

    def __len__(self) -> int:
        return len(self.tokens)


class FeatureStringBuilder:
    """Flattens a configuration into the compiler's feature flags.

    Order: one token per primary axis (prefix + member), then the configured
    derived attributes that are present, then the fixed baseline stubs.
    """

    def __init__(
        self,
        registry: AxisRegistry,
        baseline: Iterable[str] = ("imu-stubbed", "fusion-stubbed"),
        derived_features: Iterable[str] = ("boot",),
        separator: str = ",",
    ):
        self.registry = registry
        self.baseline = tuple(baseline)
        self.derived_features = tuple(derived_features)
        self.separator = separator

    def build(self, configuration: Configuration) -> FeatureSet:
        tokens = []
        for axis, member in configuration.selections:
            tokens.append(f"{self.registry.feature_prefix(axis)}{member}")
        for name in self.derived_features:
            value = configuration.get(name)
            if value:
                tokens.append(value)
        tokens.extend(self.baseline)
        return FeatureSet(tokens=tuple(tokens), separator=self.separator)
