import pytest

from narrator.modules.llm.providers.fake import FakeModelProxy
from narrator.modules.persistence.memory import MemoryPersistenceGateway
from narrator.modules.session.errors import InvalidInputError, SessionNotFoundError
from narrator.modules.session.registry import SessionRegistry
from tests.support.game import THEME_ID, bundled_store


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _registry(clock: _Clock, idle_ttl_s: float = 60.0) -> SessionRegistry:
    return SessionRegistry(
        store=bundled_store(),
        proxy_factory=FakeModelProxy,
        gateway_factory=lambda user_id: MemoryPersistenceGateway(),
        idle_ttl_s=idle_ttl_s,
        clock=clock,
    )


def test_unknown_theme_is_rejected() -> None:
    with pytest.raises(InvalidInputError):
        _registry(_Clock()).create("no_such_theme")


def test_session_is_private_to_its_owner() -> None:
    registry = _registry(_Clock())
    sid, controller = registry.create(THEME_ID, user_id="alice")
    assert registry.get(sid, user_id="alice") is controller
    with pytest.raises(SessionNotFoundError):
        registry.get(sid, user_id="bob")
    with pytest.raises(SessionNotFoundError):
        registry.get(sid)


def test_idle_sessions_are_evicted_and_touched_sessions_survive() -> None:
    clock = _Clock()
    registry = _registry(clock)
    idle_sid, _ = registry.create(THEME_ID)
    active_sid, _ = registry.create(THEME_ID)

    clock.now += 45
    registry.get(active_sid)
    clock.now += 30

    assert registry.get(active_sid) is not None
    with pytest.raises(SessionNotFoundError):
        registry.get(idle_sid)
    assert len(registry) == 1


def test_session_with_turn_in_flight_is_not_evicted() -> None:
    clock = _Clock()
    registry = _registry(clock)
    sid, controller = registry.create(THEME_ID)
    controller.is_processing = True

    clock.now += 120
    registry.create(THEME_ID)

    assert len(registry) == 2
    assert registry.get(sid) is controller


def test_zero_ttl_disables_eviction() -> None:
    clock = _Clock()
    registry = _registry(clock, idle_ttl_s=0)
    sid, controller = registry.create(THEME_ID)
    clock.now += 10_000
    assert registry.get(sid) is controller
