"""Dynamic data-source registrations.

When a delegate is deployed, the indexer must start listening to the new
contract. Handlers do not start listeners themselves: they emit a
:class:`DataSourceRegistration` that the orchestrator publishes to a
supervising :class:`RegistrationSink` after the event is processed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataSourceRegistration:
    """Request to listen to ``address`` using ``template`` with a typed context bag."""

    address: str
    template: str
    context: Mapping[str, Any] = field(default_factory=dict)
    block_number: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "template": self.template,
            "context": dict(sorted(self.context.items())),
            "block_number": self.block_number,
        }


class RegistrationSink(Protocol):
    def publish(self, registration: DataSourceRegistration) -> None:
        ...


class DataSourceRegistry:
    """Supervising component that records registrations and notifies subscribers.

    Registering the same (address, template) twice is a no-op so a replayed
    deployment event does not spawn a second listener.
    """

    def __init__(self) -> None:
        self._registrations: dict[tuple[str, str], DataSourceRegistration] = {}
        self._subscribers: list[Callable[[DataSourceRegistration], None]] = []

    def subscribe(self, callback: Callable[[DataSourceRegistration], None]) -> None:
        self._subscribers.append(callback)

    def publish(self, registration: DataSourceRegistration) -> None:
        key = (registration.address, registration.template)
        if key in self._registrations:
            logger.debug("Data source %s/%s already registered", *key)
            return
        self._registrations[key] = registration
        logger.info(
            "Registered data source %s for %s at block %d",
            registration.template,
            registration.address,
            registration.block_number,
        )
        for callback in self._subscribers:
            callback(registration)

    @property
    def registrations(self) -> list[DataSourceRegistration]:
        return list(self._registrations.values())

    def __len__(self) -> int:
        return len(self._registrations)
