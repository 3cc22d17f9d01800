"""Configuration models for Kernel providers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigurationError
from .validators.base import ENTRY_POINT_ADDRESS

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_INTERVAL_SECONDS = 180.0


def _is_address(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("0x") and len(value) == 42


def _parse_int_env(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw, 0)
    except ValueError:
        logger.warning("Invalid integer for %s: %s", name, raw)
        return default


def _parse_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid number for %s: %s", name, raw)
        return default


def _parse_json_env(name: str) -> Optional[Dict[str, Any]]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Failed to decode JSON payload for %s", name)
        return None
    if isinstance(parsed, dict):
        return parsed
    logger.warning("Expected JSON object for %s, received %s", name, type(parsed).__name__)
    return None


@dataclass
class ProviderConfig:
    """Everything needed to talk to one chain: bundler(s), paymaster, RPC and retry policy."""

    chain_id: int
    bundler_urls: List[str]
    entry_point: str = ENTRY_POINT_ADDRESS
    rpc_url: Optional[str] = None
    paymaster_url: Optional[str] = None
    paymaster_api_key: Optional[str] = None
    paymaster_context: Dict[str, Any] = field(default_factory=dict)
    bundler_headers: Dict[str, str] = field(default_factory=dict)
    bundler_timeout: float = 30.0
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_interval_seconds: float = DEFAULT_RETRY_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        if not isinstance(self.chain_id, int) or self.chain_id <= 0:
            raise ConfigurationError("chain_id must be a positive integer")
        if isinstance(self.bundler_urls, str):
            self.bundler_urls = [self.bundler_urls]
        if not self.bundler_urls or not all(isinstance(url, str) and url for url in self.bundler_urls):
            raise ConfigurationError("at least one bundler url is required")
        if not _is_address(self.entry_point):
            raise ConfigurationError("entry_point must be a 0x-prefixed 20-byte address")
        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ConfigurationError("max_retries must be a non-negative integer")
        if self.retry_interval_seconds < 0:
            raise ConfigurationError("retry_interval_seconds must be non-negative")
        if self.bundler_timeout <= 0:
            raise ConfigurationError("bundler_timeout must be positive")

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "ProviderConfig":
        def _resolve(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return default

        chain_id = _resolve("chain_id", "chainId")
        if chain_id is None:
            raise ConfigurationError("chain_id is required")
        bundler_urls = _resolve("bundler_urls", "bundlerUrls", "bundler_url", "bundlerUrl", default=[])
        try:
            return cls(
                chain_id=int(chain_id),
                bundler_urls=[bundler_urls] if isinstance(bundler_urls, str) else list(bundler_urls),
                entry_point=str(_resolve("entry_point", "entryPoint", default=ENTRY_POINT_ADDRESS)),
                rpc_url=_resolve("rpc_url", "rpcUrl"),
                paymaster_url=_resolve("paymaster_url", "paymasterUrl"),
                paymaster_api_key=_resolve("paymaster_api_key", "paymasterApiKey"),
                paymaster_context=dict(_resolve("paymaster_context", "paymasterContext", default={}) or {}),
                bundler_headers={
                    str(k): str(v)
                    for k, v in (_resolve("bundler_headers", "bundlerHeaders", default={}) or {}).items()
                },
                bundler_timeout=float(_resolve("bundler_timeout", "bundlerTimeout", default=30.0)),
                max_retries=int(_resolve("max_retries", "sendTxMaxRetries", default=DEFAULT_MAX_RETRIES)),
                retry_interval_seconds=float(
                    _resolve(
                        "retry_interval_seconds",
                        "retryIntervalSeconds",
                        default=DEFAULT_RETRY_INTERVAL_SECONDS,
                    )
                ),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"invalid provider configuration: {exc}") from exc

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        chain_id = _parse_int_env("KERNEL_CHAIN_ID")
        raw_urls = os.getenv("KERNEL_BUNDLER_RPC_URLS") or os.getenv("KERNEL_BUNDLER_RPC_URL") or ""
        bundler_urls = [url.strip() for url in raw_urls.split(",") if url.strip()]
        if not chain_id or not bundler_urls:
            raise ConfigurationError("KERNEL_CHAIN_ID and KERNEL_BUNDLER_RPC_URL must be set")
        return cls(
            chain_id=chain_id,
            bundler_urls=bundler_urls,
            entry_point=os.getenv("KERNEL_ENTRY_POINT") or ENTRY_POINT_ADDRESS,
            rpc_url=os.getenv("KERNEL_RPC_URL"),
            paymaster_url=os.getenv("KERNEL_PAYMASTER_URL"),
            paymaster_api_key=os.getenv("KERNEL_PAYMASTER_API_KEY"),
            paymaster_context=_parse_json_env("KERNEL_PAYMASTER_CONTEXT") or {},
            bundler_headers={
                str(k): str(v) for k, v in (_parse_json_env("KERNEL_BUNDLER_HEADERS") or {}).items()
            },
            bundler_timeout=_parse_float_env("KERNEL_BUNDLER_TIMEOUT", 30.0),
            max_retries=_parse_int_env("KERNEL_SEND_TX_MAX_RETRIES", DEFAULT_MAX_RETRIES) or 0,
            retry_interval_seconds=_parse_float_env(
                "KERNEL_SEND_TX_RETRY_INTERVAL_SECONDS", DEFAULT_RETRY_INTERVAL_SECONDS
            ),
        )


def _read_yaml(path: str | Path) -> Any:
    text = Path(path).read_text()
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"could not parse {path}: {exc}") from exc


def load_config(path: str | Path) -> ProviderConfig:
    """Load a single-chain provider configuration from disk."""

    data = _read_yaml(path)
    if not isinstance(data, dict):
        raise ConfigurationError("provider configuration must be a mapping")
    return ProviderConfig.from_mapping(data)


def load_chain_configs(path: str | Path) -> List[ProviderConfig]:
    """Load the ``chains`` list used to build a multi-chain batch."""

    data = _read_yaml(path)
    chains = data.get("chains") if isinstance(data, dict) else None
    if not isinstance(chains, list) or not all(isinstance(item, dict) for item in chains):
        raise ConfigurationError("multi-chain configuration needs a 'chains' list of mappings")
    return [ProviderConfig.from_mapping(item) for item in chains]
