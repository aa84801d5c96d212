"""Project registry adapters: V1 ``Projects`` and V2 ``JBProjects``."""

from __future__ import annotations

from ..events import CanonicalEvent, RawEvent
from ..normalization import normalize_address
from ..schema import PV, SOURCE_JB_PROJECTS, SOURCE_PROJECTS_V1, EventKind
from .base import EventAdapter, Params, bytes32_to_text


class ProjectsV1Adapter(EventAdapter):
    source = SOURCE_PROJECTS_V1
    pv = PV.PV1
    handlers = {"Create": "_create"}

    def _create(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.PROJECT_CREATED,
            raw,
            p.uint("projectId"),
            owner=p.address("owner"),
            handle=bytes32_to_text(p.raw("handle")),
            metadata_uri=p.text("uri"),
            terminal=normalize_address(p.text("terminal")),
        )


class JBProjectsAdapter(EventAdapter):
    """V2 projects carry ``metadata = (content, domain)`` instead of a handle."""

    source = SOURCE_JB_PROJECTS
    pv = PV.PV2
    handlers = {"Create": "_create"}

    def _create(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        metadata = p.struct("metadata")
        return self.event(
            EventKind.PROJECT_CREATED,
            raw,
            p.uint("projectId"),
            owner=p.address("owner"),
            metadata_uri=metadata.text("content"),
        )
