"""Tiered 721 delegate deployer adapters.

Both deployers emit ``DelegateDeployed(projectId, newDelegate,
governanceType)``. The legacy deployer only spawns a token listener; the
v3.2 deployer also creates the Collection and its Tiers.
"""

from __future__ import annotations

from ..events import CanonicalEvent, RawEvent
from ..schema import (
    PV,
    SOURCE_721_DEPLOYER,
    SOURCE_721_DEPLOYER_3_2,
    TEMPLATE_721_DELEGATE_3_2,
    TEMPLATE_721_DELEGATE_TOKEN,
    EventKind,
)
from .base import EventAdapter, Params


class Tiered721DeployerAdapter(EventAdapter):
    source = SOURCE_721_DEPLOYER
    pv = PV.PV2
    template = TEMPLATE_721_DELEGATE_TOKEN
    creates_collection = False
    handlers = {"DelegateDeployed": "_delegate_deployed"}

    def _delegate_deployed(self, raw: RawEvent, p: Params) -> CanonicalEvent:
        return self.event(
            EventKind.DELEGATE_DEPLOYED,
            raw,
            p.uint("projectId"),
            delegate=p.address("newDelegate"),
            governance_type=p.uint("governanceType"),
            template=self.template,
            creates_collection=self.creates_collection,
        )


class Tiered721Deployer3_2Adapter(Tiered721DeployerAdapter):
    source = SOURCE_721_DEPLOYER_3_2
    template = TEMPLATE_721_DELEGATE_3_2
    creates_collection = True
