from collections import Counter

import pytest

from matrixbuild.engine.axes import AxisRegistry
from matrixbuild.engine.constraints import ConstraintEngine
from matrixbuild.engine.resolver import CombinationResolver, resolve
from matrixbuild.errors import UnknownAxisError, UnknownMemberError


def test_real_matrix_has_17_valid_configurations(context):
    configurations = list(context.configurations())
    assert context.resolver.raw_count(context.registry) == 36
    assert len(configurations) == 17

    per_mcu = Counter(c.value("mcu") for c in configurations)
    assert per_mcu == {"esp32c3": 9, "esp32": 3, "nrf52840": 3, "nrf52832": 2}


def test_count_equals_product_minus_matching_candidates(context):
    candidates = list(context.resolver.candidates(context.registry))
    removed = [c for c in candidates if context.engine.violations(c)]
    assert len(list(context.configurations())) == len(candidates) - len(removed)


def test_surviving_combinations(context):
    configurations = list(context.configurations())
    esp32 = {(c.value("net"), c.value("log")) for c in configurations if c.value("mcu") == "esp32"}
    assert esp32 == {("stubbed", "uart"), ("wifi", "uart"), ("ble", "uart")}
    nrf52832 = {(c.value("net"), c.value("log")) for c in configurations if c.value("mcu") == "nrf52832"}
    assert nrf52832 == {("stubbed", "rtt"), ("stubbed", "uart")}


def test_resolution_is_deterministic_and_restartable(context):
    first = list(resolve(context.registry, context.engine))
    second = list(resolve(context.registry, context.engine))
    assert first == second

    generator = context.resolver.resolve(context.registry, context.engine)
    next(generator)
    # A partially consumed generator does not affect a fresh call.
    assert list(context.resolver.resolve(context.registry, context.engine)) == first


def test_enumeration_order_mcu_outermost(context):
    configurations = list(context.configurations())
    assert [c.selections for c in configurations[:3]] == [
        (("mcu", "esp32c3"), ("net", "stubbed"), ("log", "rtt")),
        (("mcu", "esp32c3"), ("net", "stubbed"), ("log", "usb-serial")),
        (("mcu", "esp32c3"), ("net", "stubbed"), ("log", "uart")),
    ]
    mcu_order = list(dict.fromkeys(c.value("mcu") for c in configurations))
    assert mcu_order == ["esp32c3", "esp32", "nrf52840", "nrf52832"]


def test_derived_attributes_attached(context):
    by_mcu = {c.value("mcu"): c for c in context.configurations()}
    assert by_mcu["esp32c3"].get("target") == "riscv32imc-unknown-none-elf"
    assert by_mcu["esp32c3"].get("boot") is None
    assert by_mcu["esp32"].get("toolchain") == "esp"
    assert by_mcu["esp32"].get("espname") == "esp32"
    assert by_mcu["nrf52840"].get("boot") == "nrf-boot-s140"
    assert by_mcu["nrf52832"].get("boot") == "nrf-boot-s132"


def test_no_axes_yields_nothing():
    assert list(CombinationResolver().resolve(AxisRegistry(), ConstraintEngine())) == []
    assert CombinationResolver().raw_count(AxisRegistry()) == 0


def test_unknown_filter_raises_before_iteration(context):
    with pytest.raises(UnknownMemberError):
        context.configurations({"mcu": "esp32x"})
    with pytest.raises(UnknownAxisError):
        context.configurations({"arch": "esp32"})
    assert len(list(context.configurations({"net": "ble"}))) == 4
