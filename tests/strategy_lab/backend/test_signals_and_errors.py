from strategy_lab.backend.core.errors import (
    AccessError,
    ConflictError,
    CorruptionError,
    StrategyLabError,
    ValidationError,
    user_message,
)
from strategy_lab.backend.core.signals import LayoutAlgorithm, SignalBus, SignalType


def test_signal_bus_delivers_and_unsubscribes() -> None:
    bus = SignalBus()
    received = []
    unsubscribe = bus.subscribe(SignalType.FORCE_EDGE_UPDATE, received.append)

    bus.emit(SignalType.FORCE_EDGE_UPDATE, edges=[])
    unsubscribe()
    bus.emit(SignalType.FORCE_EDGE_UPDATE, edges=[])

    assert len(received) == 1
    assert received[0].payload == {"edges": []}
    assert len(bus.history) == 2


def test_failing_subscriber_does_not_break_emitter() -> None:
    bus = SignalBus()
    received = []

    def broken(signal) -> None:
        raise RuntimeError("boom")

    bus.subscribe(SignalType.GLOBAL_AUTO_ARRANGE, broken)
    bus.subscribe(SignalType.GLOBAL_AUTO_ARRANGE, received.append)
    signal = bus.request_auto_arrange(LayoutAlgorithm.TREE)

    assert signal.payload == {"layout": "tree"}
    assert received == [signal]


def test_error_codes_and_user_messages() -> None:
    assert ValidationError().code == "validation_error"
    assert ConflictError("taken", choices=("replace", "cancel"), existing_id="s1").choices == ("replace", "cancel")
    assert AccessError().code == "access_denied"
    assert isinstance(CorruptionError(), StrategyLabError)
    assert user_message(AccessError()) == AccessError.default_message
    assert user_message(KeyError("x")).startswith("Unexpected error")
