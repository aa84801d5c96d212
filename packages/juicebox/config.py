"""Indexer configuration: environment defaults plus optional JSON overrides.

JSON files are read with ``utf-8-sig`` so BOM-prefixed files written by
PowerShell 5.1 parse the same as plain UTF-8.

Environment variables
---------------------
  JUICETOOL_RPC_URL              JSON-RPC endpoint for read-through calls
  JUICETOOL_RPC_TIMEOUT          Per-request timeout, seconds (default 10)
  JUICETOOL_RPC_MAX_RETRIES      Bounded transport retries (default 2)
  JUICETOOL_TIERED721_STORE_3_2  JBTiered721DelegateStore (v3.2) address
  JUICETOOL_RATES_PATH           Reference-currency rate table (JSON)

A JSON config object may set the same values under the keys ``rpc_url``,
``rpc_timeout``, ``rpc_max_retries``, ``tiered721_store_3_2`` and
``rates_path``; explicit keys win over the environment.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .errors import ConfigLoadError

DEFAULT_RPC_URL = "https://cloudflare-eth.com"
DEFAULT_RPC_TIMEOUT = 10.0
DEFAULT_RPC_MAX_RETRIES = 2

_KNOWN_KEYS = frozenset(
    {"rpc_url", "rpc_timeout", "rpc_max_retries", "tiered721_store_3_2", "rates_path"}
)


@dataclass(frozen=True)
class IndexerConfig:
    """Settings for one indexing run.

    ``tiered721_store_3_2`` may be empty; handlers that need it abandon
    their entity and log instead of failing the run.
    """

    rpc_url: str = DEFAULT_RPC_URL
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    rpc_max_retries: int = DEFAULT_RPC_MAX_RETRIES
    tiered721_store_3_2: str = ""
    rates_path: str = ""


def load_json_value_from_path(path: Union[str, Path]) -> Any:
    """Load any JSON value from a file, accepting a UTF-8 BOM.

    Raises:
        ConfigLoadError: If the file is not found or contains invalid JSON.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8-sig")
    except FileNotFoundError as exc:
        raise ConfigLoadError(f"config file not found: {p}") from exc

    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigLoadError(f"config file is not valid JSON ({p}): {exc}") from exc


def load_json_from_path(path: Union[str, Path]) -> dict:
    """Load a JSON object from a file.

    Raises:
        ConfigLoadError: If the file is missing, invalid, or not an object.
    """
    result = load_json_value_from_path(path)
    if not isinstance(result, dict):
        raise ConfigLoadError(
            f"config file must contain a JSON object, got {type(result).__name__}: {path}"
        )
    return result


def load_json_from_string(raw: str) -> dict:
    """Parse a JSON object string.

    Strips surrounding whitespace, one pair of outer single quotes and a
    leading BOM character before parsing.

    Raises:
        ConfigLoadError: If the string is not valid JSON or not an object.
    """
    original_raw = raw
    raw = raw.strip()
    if len(raw) >= 2 and raw.startswith("'") and raw.endswith("'"):
        raw = raw[1:-1].strip()
    if raw.startswith("\ufeff"):
        raw = raw[1:]
    try:
        result = json.loads(raw)
    except json.JSONDecodeError as exc:
        snippet = original_raw[:120]
        if len(original_raw) > 120:
            snippet += "..."
        raise ConfigLoadError(
            "config string is not valid JSON: "
            f"{exc} (raw_len={len(original_raw)}, raw_prefix={snippet!r})"
        ) from exc

    if not isinstance(result, dict):
        raise ConfigLoadError(
            f"config string must be a JSON object, got {type(result).__name__}"
        )
    return result


def _env_defaults(env: Mapping[str, str]) -> dict:
    return {
        "rpc_url": (env.get("JUICETOOL_RPC_URL") or "").strip() or DEFAULT_RPC_URL,
        "rpc_timeout": env.get("JUICETOOL_RPC_TIMEOUT") or DEFAULT_RPC_TIMEOUT,
        "rpc_max_retries": env.get("JUICETOOL_RPC_MAX_RETRIES") or DEFAULT_RPC_MAX_RETRIES,
        "tiered721_store_3_2": (env.get("JUICETOOL_TIERED721_STORE_3_2") or "").strip(),
        "rates_path": (env.get("JUICETOOL_RATES_PATH") or "").strip(),
    }


def load_indexer_config(
    *,
    config_path: Union[str, Path, None] = None,
    config_json: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> IndexerConfig:
    """Build an :class:`IndexerConfig` from the environment and optional JSON.

    At most one of ``config_path`` and ``config_json`` may be provided.

    Raises:
        ConfigLoadError: If both sources are given, loading fails, a key is
            unknown, or a numeric value does not parse.
    """
    if config_path is not None and config_json is not None:
        raise ConfigLoadError("Provide only one of config_path or config_json, not both.")

    overrides: dict = {}
    if config_path is not None:
        overrides = load_json_from_path(config_path)
    elif config_json is not None:
        overrides = load_json_from_string(config_json)

    unknown = sorted(set(overrides) - _KNOWN_KEYS)
    if unknown:
        raise ConfigLoadError(f"unknown config keys: {', '.join(unknown)}")

    values = _env_defaults(os.environ if env is None else env)
    values.update(overrides)

    try:
        rpc_timeout = float(values["rpc_timeout"])
        rpc_max_retries = int(values["rpc_max_retries"])
    except (TypeError, ValueError) as exc:
        raise ConfigLoadError(f"invalid numeric config value: {exc}") from exc
    if rpc_max_retries < 0:
        raise ConfigLoadError(f"rpc_max_retries must be non-negative; got {rpc_max_retries}")

    return IndexerConfig(
        rpc_url=str(values["rpc_url"]),
        rpc_timeout=rpc_timeout,
        rpc_max_retries=rpc_max_retries,
        tiered721_store_3_2=str(values["tiered721_store_3_2"] or ""),
        rates_path=str(values["rates_path"] or ""),
    )
