"""
receiptbook.viewmodels
~~~~~~~~~~~~~~~~~~~~~~
Headless view-model layer: observable values and the click counter.

There is no binding framework. A presentation layer subscribes to an
``Observable`` and gets called synchronously whenever its value changes::

    vm = CounterViewModel(CounterService())
    vm.counter_text.subscribe(lambda old, new: print(new))
    vm.increment()          # prints "Clicked 1 time"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, List, TypeVar

T = TypeVar("T")

Listener = Callable[[T, T], None]


# ---------------------------------------------------------------------------
# Observable
# ---------------------------------------------------------------------------

class Observable(Generic[T]):
    """
    A value with change listeners.

    Listeners receive ``(old, new)`` and run only when the new value is not
    equal to the old one. Exceptions raised by a listener propagate to the
    code that set the value.
    """

    def __init__(self, value: T) -> None:
        self._value = value
        self._listeners: List[Listener] = []

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, new: T) -> None:
        old = self._value
        if old == new:
            return
        self._value = new
        for listener in list(self._listeners):
            listener(old, new)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def __repr__(self) -> str:
        return f"Observable({self._value!r})"


# ---------------------------------------------------------------------------
# Counter
# ---------------------------------------------------------------------------

@dataclass
class CounterModel:
    count: int = 0


class CounterService:
    """Holds the counter state behind a tiny service interface."""

    def __init__(self, model: CounterModel | None = None) -> None:
        self._counter = model or CounterModel()

    def get_count(self) -> int:
        return self._counter.count

    def increment_count(self) -> None:
        self._counter.count += 1


def format_clicks(count: int) -> str:
    return f"Clicked {count} time" if count == 1 else f"Clicked {count} times"


class CounterViewModel:
    """Exposes the counter as display text and an increment command."""

    def __init__(self, service: CounterService) -> None:
        self._service = service
        self.counter_text: Observable[str] = Observable(format_clicks(service.get_count()))

    def increment(self) -> None:
        self._service.increment_count()
        self._refresh()

    def _refresh(self) -> None:
        self.counter_text.value = format_clicks(self._service.get_count())


__all__ = [
    "Observable",
    "CounterModel",
    "CounterService",
    "CounterViewModel",
    "format_clicks",
]
