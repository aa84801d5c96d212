"""Event normalizer: one adapter per protocol-version / contract-variant pair.

Usage::

    from packages.juicebox.normalizer import normalize

    canonical = normalize(raw_event)   # raises NormalizationError

The adapter is selected once per event from ``raw.source``; the ABI event
name then picks the handler inside that adapter.
"""

from __future__ import annotations

from ..errors import NormalizationError
from ..events import CanonicalEvent, RawEvent
from .base import EventAdapter
from .delegates import Tiered721Deployer3_2Adapter, Tiered721DeployerAdapter
from .jb_controller import JBControllerAdapter
from .jb_terminal import JBETHPaymentTerminalAdapter
from .projects import JBProjectsAdapter, ProjectsV1Adapter
from .terminal_v1 import TerminalV1_1Adapter, TerminalV1Adapter

ADAPTERS: dict[str, EventAdapter] = {
    adapter.source: adapter
    for adapter in (
        ProjectsV1Adapter(),
        TerminalV1Adapter(),
        TerminalV1_1Adapter(),
        JBProjectsAdapter(),
        JBETHPaymentTerminalAdapter(),
        JBControllerAdapter(),
        Tiered721DeployerAdapter(),
        Tiered721Deployer3_2Adapter(),
    )
}


def adapter_for(source: str) -> EventAdapter:
    adapter = ADAPTERS.get(source)
    if adapter is None:
        raise NormalizationError(f"no adapter registered for source {source!r}")
    return adapter


def normalize(raw: RawEvent) -> CanonicalEvent:
    """Translate ``raw`` into its canonical event.

    Raises:
        NormalizationError: Unknown source or event name, or malformed params.
    """
    return adapter_for(raw.source).normalize(raw)


__all__ = ["ADAPTERS", "EventAdapter", "adapter_for", "normalize"]
