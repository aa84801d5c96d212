"""Adapter base class and parameter accessors shared by every variant."""

from __future__ import annotations

from typing import Any, Mapping

from ..errors import NormalizationError
from ..events import CanonicalEvent, RawEvent, tx_context
from ..normalization import normalize_address, normalize_hex, to_bool, to_int
from ..schema import EventKind


class Params:
    """Typed access to decoded event parameters.

    Missing names raise ``KeyError`` and unparseable values ``ValueError``;
    :meth:`EventAdapter.normalize` turns both into ``NormalizationError``.
    """

    def __init__(self, values: Mapping[str, Any]):
        if not isinstance(values, Mapping):
            raise TypeError(f"expected named parameters, got {type(values).__name__}")
        self._values = values

    def raw(self, name: str) -> Any:
        if name not in self._values:
            raise KeyError(f"missing parameter {name!r}")
        return self._values[name]

    def uint(self, name: str) -> int:
        return to_int(self.raw(name))

    def address(self, name: str) -> str:
        return normalize_address(self.raw(name))

    def text(self, name: str, default: str = "") -> str:
        value = self._values.get(name)
        return default if value is None else str(value)

    def flag(self, name: str) -> bool:
        return to_bool(self.raw(name))

    def struct(self, name: str) -> "Params":
        return Params(self.raw(name))


def bytes32_to_text(value: Any) -> str:
    """Decode a null-padded bytes32 (hex string or bytes) into text."""
    hex_value = normalize_hex(value)
    if not hex_value:
        return ""
    raw = bytes.fromhex(hex_value[2:])
    return raw.rstrip(b"\x00").decode("utf-8", errors="replace")


class EventAdapter:
    """Translates one contract variant's events into canonical events.

    Subclasses set :attr:`source` and :attr:`pv` and map ABI event names to
    handler method names in :attr:`handlers`. Each handler receives the raw
    event plus a :class:`Params` view of its parameters and returns one
    :class:`CanonicalEvent`. Handlers never touch the store.
    """

    source: str = ""
    pv: str = ""
    handlers: Mapping[str, str] = {}

    def event_names(self) -> frozenset[str]:
        return frozenset(self.handlers)

    def normalize(self, raw: RawEvent) -> CanonicalEvent:
        method_name = self.handlers.get(raw.name)
        if method_name is None:
            raise NormalizationError(f"{self.source} has no adapter for event {raw.name!r}")
        try:
            return getattr(self, method_name)(raw, Params(raw.params))
        except (KeyError, ValueError, TypeError) as exc:
            raise NormalizationError(
                f"malformed {self.source}.{raw.name} at {raw.tx_hash}:{raw.log_index}: {exc}"
            ) from exc

    def event(
        self,
        kind: EventKind,
        raw: RawEvent,
        project_id: int,
        **fields: Any,
    ) -> CanonicalEvent:
        return CanonicalEvent(
            kind=kind,
            pv=self.pv,
            project_id=int(project_id),
            tx=tx_context(raw),
            **fields,
        )
