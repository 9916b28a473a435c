import logging
from typing import Dict, Iterable, List, Optional

from matrixbuild.errors import ConfigurationError
from shared_libs.config_models.matrix_models import MatrixDefinition

logger = logging.getLogger(__name__)


class CrossValidator:
    """Performs cross-reference checks between the sections of a matrix definition."""

    def __init__(self, definition: MatrixDefinition, known_toolchains: Optional[Iterable[str]] = None):
        self.definition = definition
        self.known_toolchains = set(known_toolchains) if known_toolchains is not None else None

    def validate(self) -> None:
        logger.info("--- Performing Cross-Validation ---")
        errors: Dict[str, List[str]] = {
            "axis_ref": [],
            "member_ref": [],
            "derived_ref": [],
            "derived_totality": [],
            "toolchain_ref": [],
        }
        members_by_axis = {a.name: list(a.members) for a in self.definition.axes}

        def check_selection(section: str, axis: str, member: str) -> None:
            if axis not in members_by_axis:
                errors["axis_ref"].append(f"{section} references undefined axis '{axis}'.")
            elif member not in members_by_axis[axis]:
                errors["member_ref"].append(
                    f"{section} references undefined member '{member}' of axis '{axis}'."
                )

        logger.info("Checking derived attribute references...")
        derived_owner: Dict[str, str] = {}
        for axis, per_member in self.definition.derived.items():
            for member, attributes in per_member.items():
                check_selection("derived", axis, member)
                for name in attributes:
                    owner = derived_owner.setdefault(name, axis)
                    if owner != axis:
                        errors["derived_ref"].append(
                            f"Derived attribute '{name}' is defined on both '{owner}' and '{axis}'."
                        )

        logger.info("Checking exclusion references...")
        for idx, entry in enumerate(self.definition.exclude):
            for axis, member in entry.items():
                check_selection(f"exclude[{idx}]", axis, member)

        logger.info("Checking tolerance references...")
        for idx, entry in enumerate(self.definition.tolerate):
            for axis, member in entry.when.items():
                check_selection(f"tolerate[{idx}]", axis, member)

        logger.info("Checking feature and build attribute references...")
        for name in self.definition.features.derived:
            if name not in derived_owner:
                errors["derived_ref"].append(f"features.derived names unknown derived attribute '{name}'.")

        required = [self.definition.build.target_attribute, self.definition.build.toolchain_attribute]
        for name in required:
            owner = derived_owner.get(name)
            if owner is None:
                errors["derived_ref"].append(f"Build attribute '{name}' is not defined by any axis.")
                continue
            # Target and toolchain must be total over their source axis.
            for member in members_by_axis.get(owner, []):
                if name not in self.definition.derived.get(owner, {}).get(member, {}):
                    errors["derived_totality"].append(
                        f"Member '{member}' of axis '{owner}' does not define required attribute '{name}'."
                    )

        if self.known_toolchains is not None:
            toolchain_attr = self.definition.build.toolchain_attribute
            for axis, per_member in self.definition.derived.items():
                for member, attributes in per_member.items():
                    variant = attributes.get(toolchain_attr)
                    if variant is not None and variant not in self.known_toolchains:
                        errors["toolchain_ref"].append(
                            f"'{axis}={member}' selects unknown toolchain variant '{variant}' "
                            f"(known: {sorted(self.known_toolchains)})."
                        )

        all_errors = [msg for category in errors.values() for msg in category]
        if all_errors:
            logger.error("❌ Cross-Validation Failed!")
            for msg in all_errors:
                logger.error(f"   - {msg}")
            raise ConfigurationError("Matrix definition failed cross-validation.", all_errors)
        logger.info("✅ All Cross-Validation Checks Passed!")
