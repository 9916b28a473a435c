# shared_libs/config_models/matrix_models.py

from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


# --- Axes and derived attributes ---

class AxisDefinition(BaseModel):
    """A selectable build dimension. Exactly one member is chosen per configuration."""
    name: str = Field(..., description="Axis identifier, e.g. 'mcu', 'net', 'log'.")
    members: List[str] = Field(..., description="Ordered, distinct member values.")
    feature_prefix: str = Field("", description="Prefix prepended to a member to form its cargo feature token (e.g. 'mcu-').")
    model_config = {"extra": "forbid"}

    @field_validator("members")
    @classmethod
    def check_members(cls, members: List[str]) -> List[str]:
        if not members:
            raise ValueError("an axis must declare at least one member")
        duplicates = sorted({m for m in members if members.count(m) > 1})
        if duplicates:
            raise ValueError(f"duplicate members: {duplicates}")
        return members


class ToleranceDefinition(BaseModel):
    """Configurations matching every selection in 'when' may fail without failing the run."""
    when: Dict[str, str] = Field(..., description="Axis -> member selections that must all match.")
    reason: str = Field("", description="Why failures are tolerated (e.g. target not fully working yet).")
    model_config = {"extra": "forbid"}

    @field_validator("when")
    @classmethod
    def check_not_empty(cls, when: Dict[str, str]) -> Dict[str, str]:
        if not when:
            raise ValueError("'when' must select at least one axis member")
        return when


# --- Settings ---

class FeatureSettings(BaseModel):
    derived: List[str] = Field(["boot"], description="Derived attributes appended as feature tokens when present.")
    baseline: List[str] = Field(["imu-stubbed", "fusion-stubbed"], description="Stub features always appended last.")
    separator: str = Field(",", description="Separator used to join tokens into the feature string.")
    model_config = {"extra": "forbid"}


class BuildSettings(BaseModel):
    working_dir: str = Field("firmware", description="Firmware crate directory, relative to the project root.")
    target_attribute: str = Field("target", description="Derived attribute holding the compilation target triple.")
    toolchain_attribute: str = Field("toolchain", description="Derived attribute selecting the toolchain strategy.")
    env_template: Optional[str] = Field(".env.template", description="Copied to env_file before building, if present.")
    env_file: str = Field(".env", description="Environment file expected by the firmware build.")
    format_check: bool = Field(True, description="Run 'cargo fmt --check' once before the matrix.")
    workers: int = Field(1, ge=1, description="Number of configurations built concurrently.")
    cache_dir: Optional[str] = Field(None, description="Root of per-configuration cargo target dirs. Disabled when None.")
    model_config = {"extra": "forbid"}


class ReportingSettings(BaseModel):
    path_prefix: str = Field("firmware/", description="Prefix that turns crate-relative finding paths into repository-relative ones.")
    output_dir: str = Field("artifacts/reports", description="Where per-configuration reports are published.")
    tool_name: str = Field("clippy", description="Tool name recorded in published SARIF.")
    model_config = {"extra": "forbid"}


# --- Main Matrix Definition ---

class MatrixDefinition(BaseModel):
    axes: List[AxisDefinition] = Field(..., description="Primary axes in enumeration order (outermost first).")
    derived: Dict[str, Dict[str, Dict[str, str]]] = Field(
        default_factory=dict,
        description="axis -> member -> {derived_name: value}.",
    )
    exclude: List[Dict[str, str]] = Field(
        default_factory=list,
        description="Forbidden pairs, each exactly two axis -> member selections.",
    )
    tolerate: List[ToleranceDefinition] = Field(default_factory=list)
    features: FeatureSettings = Field(default_factory=FeatureSettings)
    build: BuildSettings = Field(default_factory=BuildSettings)
    reporting: ReportingSettings = Field(default_factory=ReportingSettings)
    model_config = {"extra": "forbid"}

    @field_validator("exclude")
    @classmethod
    def check_exclusion_shape(cls, exclude: List[Dict[str, str]]) -> List[Dict[str, str]]:
        for idx, entry in enumerate(exclude):
            if len(entry) != 2:
                raise ValueError(
                    f"exclude[{idx}] must select exactly two axes (distinct), got {sorted(entry)}"
                )
        return exclude
