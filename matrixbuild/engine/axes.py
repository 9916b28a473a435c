import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from matrixbuild.errors import (
    ConfigurationError,
    DuplicateAxisError,
    UnknownAxisError,
    UnknownMemberError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Axis:
    name: str
    members: Tuple[str, ...]
    feature_prefix: str = ""

    def feature_token(self, member: str) -> str:
        return f"{self.feature_prefix}{member}"


class AxisRegistry:
    """
    Selectable build dimensions and the attributes derived from their members.

    Axes keep their registration order; that order drives enumeration and
    feature-token order downstream. Derived attributes are looked up per
    (axis, member, name) and are simply absent for members that do not
    define them.
    """

    def __init__(self):
        self._axes: Dict[str, Axis] = {}
        self._derived: Dict[str, Dict[str, Dict[str, str]]] = {}
        self._derived_owner: Dict[str, str] = {}
        self._frozen = False

    def _check_mutable(self) -> None:
        if self._frozen:
            raise ConfigurationError("AxisRegistry is frozen; axes cannot be changed after initialization.")

    def register_axis(self, name: str, members: Iterable[str], feature_prefix: str = "") -> Axis:
        self._check_mutable()
        if name in self._axes:
            raise DuplicateAxisError(f"Axis '{name}' is already registered.")
        member_list = [str(m) for m in members]
        if not member_list:
            raise ConfigurationError(f"Axis '{name}' must declare at least one member.")
        duplicates = sorted({m for m in member_list if member_list.count(m) > 1})
        if duplicates:
            raise ConfigurationError(f"Axis '{name}' declares duplicate members: {duplicates}")

        axis = Axis(name=name, members=tuple(member_list), feature_prefix=feature_prefix)
        self._axes[name] = axis
        self._derived[name] = {}
        logger.debug(f"Registered axis '{name}' with members {list(axis.members)}")
        return axis

    def register_derived(self, axis_name: str, mapping: Mapping[str, Mapping[str, str]]) -> None:
        """Attach derived attributes to members of ``axis_name``.

        ``mapping`` is ``{member: {derived_name: value}}``. Repeated calls merge.
        A derived name belongs to exactly one axis.
        """
        self._check_mutable()
        axis = self._axes.get(axis_name)
        if axis is None:
            raise UnknownAxisError(f"Derived mapping references unregistered axis '{axis_name}'.")

        for member, attributes in mapping.items():
            if member not in axis.members:
                raise UnknownMemberError(
                    f"Derived mapping for axis '{axis_name}' references unknown member '{member}'."
                )
            for derived_name, value in attributes.items():
                owner = self._derived_owner.get(derived_name)
                if owner is not None and owner != axis_name:
                    raise ConfigurationError(
                        f"Derived attribute '{derived_name}' is already defined on axis '{owner}', "
                        f"cannot also define it on '{axis_name}'."
                    )
                self._derived_owner[derived_name] = axis_name
                self._derived[axis_name].setdefault(member, {})[derived_name] = str(value)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def axes(self) -> List[Axis]:
        return list(self._axes.values())

    def axis(self, name: str) -> Axis:
        axis = self._axes.get(name)
        if axis is None:
            raise UnknownAxisError(f"Axis '{name}' is not registered.")
        return axis

    def has_axis(self, name: str) -> bool:
        return name in self._axes

    def members_of(self, axis: str) -> Tuple[str, ...]:
        return self.axis(axis).members

    def feature_prefix(self, axis: str) -> str:
        return self.axis(axis).feature_prefix

    def derived_names(self, axis: str) -> List[str]:
        self.axis(axis)
        return [name for name, owner in self._derived_owner.items() if owner == axis]

    def derived_value(self, axis: str, member: str, derived_name: str) -> Optional[str]:
        if member not in self.axis(axis).members:
            raise UnknownMemberError(f"Axis '{axis}' has no member '{member}'.")
        return self._derived[axis].get(member, {}).get(derived_name)

    def derived_for(self, axis: str, member: str) -> Dict[str, str]:
        """All derived attributes defined for one member, in definition order."""
        if member not in self.axis(axis).members:
            raise UnknownMemberError(f"Axis '{axis}' has no member '{member}'.")
        return dict(self._derived[axis].get(member, {}))
