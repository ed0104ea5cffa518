import pytest

from projsync.models.ports import PORT_KEYS, PortSet, is_good_port


def test_port_bounds() -> None:
    assert not is_good_port(0)
    assert is_good_port(1)
    assert is_good_port(65535)
    assert not is_good_port(65536)
    assert not is_good_port(-80)


@pytest.mark.parametrize("raw", ["0", "65536", "abc", "-1", "80.5", True])
def test_invalid_port_keeps_previous_value(raw: object) -> None:
    ports = PortSet(app_port=8080, owner="demo")

    change = ports.apply({"app_port": raw})

    assert ports.app_port == 8080
    assert not change
    assert change.rejected == {"app_port": str(raw)}


def test_numeric_strings_and_ints_are_accepted() -> None:
    ports = PortSet(owner="demo")

    change = ports.apply({"app_port": " 9080 ", "debug_port": 7777})

    assert ports.app_port == 9080
    assert ports.debug_port == 7777
    assert change.changed == {"app_port", "debug_port"}


def test_empty_or_null_unsets_a_port() -> None:
    ports = PortSet(app_port=8080, debug_port=7777, owner="demo")

    change = ports.apply({"app_port": "", "debug_port": None})

    assert ports.app_port is None
    assert ports.debug_port is None
    assert change.changed == {"app_port", "debug_port"}


def test_unsetting_an_absent_port_is_not_a_change() -> None:
    ports = PortSet(owner="demo")

    assert not ports.set_port("internal_port", "")
    assert ports.internal_port is None


def test_absent_keys_are_untouched() -> None:
    ports = PortSet(app_port=8080, internal_port=3000, owner="demo")

    change = ports.apply({"internal_port": "3001"})

    assert ports.app_port == 8080
    assert ports.internal_port == 3001
    assert change.changed == {"internal_port"}


def test_same_value_is_not_a_change() -> None:
    ports = PortSet(app_port=8080, owner="demo")

    assert not ports.set_port("app_port", "8080")
    assert not ports.apply({"app_port": 8080})


def test_as_dict_lists_every_port() -> None:
    ports = PortSet(app_port=8080, owner="demo")

    assert list(ports.as_dict()) == list(PORT_KEYS)
    assert ports.as_dict()["app_port"] == 8080
    assert ports.as_dict()["internal_debug_port"] is None


def test_owner_does_not_affect_equality() -> None:
    assert PortSet(app_port=1, owner="a") == PortSet(app_port=1, owner="b")
