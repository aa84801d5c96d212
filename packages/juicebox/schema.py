"""Shared constants: protocol versions, event kinds, entity kinds, tape envelope.

Raw events written to an events.jsonl tape carry this envelope:
  - parser_version   int   Schema version; increment when the envelope changes
  - seq              int   Monotonic delivery counter
  - source           str   Contract variant that emitted the log (SOURCE_*)
  - name             str   Event name as declared in the contract ABI
  - params           dict  Decoded event parameters, ABI names unchanged
  - address          str   Emitting contract address
  - block_number     int
  - block_timestamp  int   Unix seconds
  - tx_hash          str
  - tx_from          str   Transaction sender
  - log_index        int
"""

from __future__ import annotations

from enum import Enum

# Increment this whenever the shape of the raw event envelope changes.
PARSER_VERSION: int = 1


class PV:
    """Protocol version tags."""

    PV1 = "1"
    PV2 = "2"

    ALL = (PV1, PV2)


# Contract variants (one normalizer adapter each).
SOURCE_PROJECTS_V1 = "Projects"
SOURCE_TERMINAL_V1 = "TerminalV1"
SOURCE_TERMINAL_V1_1 = "TerminalV1_1"
SOURCE_JB_PROJECTS = "JBProjects"
SOURCE_JB_ETH_TERMINAL = "JBETHPaymentTerminal"
SOURCE_JB_CONTROLLER = "JBController"
SOURCE_721_DEPLOYER = "JBTiered721DelegateDeployer"
SOURCE_721_DEPLOYER_3_2 = "JBTiered721DelegateDeployer3_2"

# Well-known id of the protocol-wide singletons.
PROTOCOL_ID = "1"


class EventKind(str, Enum):
    """Canonical event kinds shared by every protocol version."""

    PROJECT_CREATED = "projectCreate"
    PAY = "pay"
    TAP = "tap"
    REDEEM = "redeem"
    ADD_TO_BALANCE = "addToBalance"
    MINT_TOKENS = "mintTokens"
    PRINT_RESERVES = "printReserves"
    DISTRIBUTE_TO_PAYOUT_MOD = "distributeToPayoutMod"
    DISTRIBUTE_TO_TICKET_MOD = "distributeToTicketMod"
    DELEGATE_DEPLOYED = "delegateDeployed"


class EntityKind:
    """Entity kind names used as the store's first key component."""

    PROJECT = "Project"
    PARTICIPANT = "Participant"
    PROTOCOL_LOG = "ProtocolLog"
    PROTOCOL_TOTALS = "ProtocolTotals"
    PROJECT_EVENT = "ProjectEvent"
    PROJECT_CREATE_EVENT = "ProjectCreateEvent"
    PAY_EVENT = "PayEvent"
    TAP_EVENT = "TapEvent"
    REDEEM_EVENT = "RedeemEvent"
    ADD_TO_BALANCE_EVENT = "AddToBalanceEvent"
    MINT_TOKENS_EVENT = "MintTokensEvent"
    PRINT_RESERVES_EVENT = "PrintReservesEvent"
    DISTRIBUTE_TO_PAYOUT_MOD_EVENT = "DistributeToPayoutModEvent"
    DISTRIBUTE_TO_TICKET_MOD_EVENT = "DistributeToTicketModEvent"
    COLLECTION = "Collection"
    TIER = "Tier"


# Data-source templates spawned by delegate deployers.
TEMPLATE_721_DELEGATE_TOKEN = "JB721DelegateToken"
TEMPLATE_721_DELEGATE_3_2 = "JB721Delegate3_2"
