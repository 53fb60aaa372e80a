import threading

import pytest

from aftercommit.dispatch import emulation as emulation_module
from aftercommit.dispatch.emulation import EmulationController


def test_default_applies_without_overrides():
    assert EmulationController(default=True).enabled() is True
    assert EmulationController(default=False).enabled() is False


def test_scopes_nest_and_restore():
    c = EmulationController(default=True)
    with c.with_scope(False):
        assert not c.enabled()
        with c.with_scope(True):
            assert c.enabled()
        assert not c.enabled()
    assert c.enabled()


def test_none_inherits_enclosing_value():
    c = EmulationController(default=True)
    with c.with_scope(False):
        with c.with_scope(None):
            assert not c.enabled()


def test_scope_restored_when_block_raises():
    c = EmulationController(default=True)
    with pytest.raises(KeyError):
        with c.with_scope(False):
            raise KeyError("x")
    assert c.enabled()


def test_override_wins_over_global_default():
    c = EmulationController(default=False)
    with c.with_scope(True):
        assert c.enabled()
        c.set_enabled(False)
        assert c.enabled()
    assert not c.enabled()


def test_default_scope_restores_previous_default():
    c = EmulationController(default=True)
    with c.default_scope(False):
        assert c.default is False
        assert not c.enabled()
    assert c.default is True


def test_scope_works_as_decorator():
    c = EmulationController(default=True)

    @c.with_scope(False)
    def inside():
        return c.enabled()

    assert inside() is False
    assert inside() is False
    assert c.enabled()


def test_overrides_are_not_visible_from_other_threads():
    c = EmulationController(default=True)
    seen = []
    with c.with_scope(False):
        worker = threading.Thread(target=lambda: seen.append(c.enabled()))
        worker.start()
        worker.join()
        assert not c.enabled()
    assert seen == [True]


def test_module_level_toggles_use_the_global_controller():
    controller = emulation_module.get_emulation()
    with controller.default_scope(controller.default):
        emulation_module.set_enabled(False)
        assert not emulation_module.is_enabled()
        with emulation_module.with_commits():
            assert emulation_module.is_enabled()
        with emulation_module.with_commits(False):
            assert not emulation_module.is_enabled()
