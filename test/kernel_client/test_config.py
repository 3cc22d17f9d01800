from pathlib import Path

import pytest
import yaml

from kernel_client.config import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_INTERVAL_SECONDS,
    ProviderConfig,
    load_chain_configs,
    load_config,
)
from kernel_client.errors import ConfigurationError
from kernel_client.validators import ENTRY_POINT_ADDRESS


def test_defaults_follow_send_retry_policy() -> None:
    config = ProviderConfig(chain_id=1, bundler_urls="https://bundler.example/rpc")

    assert config.bundler_urls == ["https://bundler.example/rpc"]
    assert config.entry_point == ENTRY_POINT_ADDRESS
    assert config.max_retries == DEFAULT_MAX_RETRIES == 3
    assert config.retry_interval_seconds == DEFAULT_RETRY_INTERVAL_SECONDS == 180.0


def test_load_config_accepts_camel_case_keys(tmp_path: Path) -> None:
    path = tmp_path / "kernel.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "chainId": 137,
                "bundlerUrl": "https://polygon.example/rpc",
                "paymasterUrl": "https://paymaster.example",
                "paymasterContext": {"policy": "gold"},
                "sendTxMaxRetries": 5,
            }
        )
    )

    config = load_config(path)

    assert config.chain_id == 137
    assert config.bundler_urls == ["https://polygon.example/rpc"]
    assert config.paymaster_context == {"policy": "gold"}
    assert config.max_retries == 5


def test_load_chain_configs(tmp_path: Path) -> None:
    path = tmp_path / "chains.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "chains": [
                    {"chain_id": 1, "bundler_urls": ["https://a", "https://b"]},
                    {"chain_id": 10, "bundler_url": "https://c", "max_retries": 0},
                ]
            }
        )
    )

    configs = load_chain_configs(path)

    assert [config.chain_id for config in configs] == [1, 10]
    assert configs[0].bundler_urls == ["https://a", "https://b"]
    assert configs[1].max_retries == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"bundler_urls": ["https://a"]},
        {"chain_id": 0, "bundler_urls": ["https://a"]},
        {"chain_id": 1, "bundler_urls": []},
        {"chain_id": 1, "bundler_urls": ["https://a"], "entry_point": "0x1234"},
        {"chain_id": 1, "bundler_urls": ["https://a"], "max_retries": -1},
        {"chain_id": "mainnet", "bundler_urls": ["https://a"]},
    ],
)
def test_invalid_configuration_is_rejected(payload) -> None:
    with pytest.raises(ConfigurationError):
        ProviderConfig.from_mapping(payload)


def test_chain_file_needs_chain_list(tmp_path: Path) -> None:
    path = tmp_path / "chains.yaml"
    path.write_text("chain_id: 1\n")
    with pytest.raises(ConfigurationError):
        load_chain_configs(path)


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KERNEL_CHAIN_ID", "0x89")
    monkeypatch.setenv("KERNEL_BUNDLER_RPC_URLS", "https://a, https://b")
    monkeypatch.setenv("KERNEL_PAYMASTER_CONTEXT", '{"sponsor": "ops"}')
    monkeypatch.setenv("KERNEL_SEND_TX_MAX_RETRIES", "not-a-number")
    monkeypatch.setenv("KERNEL_SEND_TX_RETRY_INTERVAL_SECONDS", "1.5")

    config = ProviderConfig.from_env()

    assert config.chain_id == 137
    assert config.bundler_urls == ["https://a", "https://b"]
    assert config.paymaster_context == {"sponsor": "ops"}
    assert config.max_retries == DEFAULT_MAX_RETRIES
    assert config.retry_interval_seconds == 1.5


def test_from_env_requires_chain_and_bundler(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("KERNEL_CHAIN_ID", "KERNEL_BUNDLER_RPC_URLS", "KERNEL_BUNDLER_RPC_URL"):
        monkeypatch.delenv(name, raising=False)
    with pytest.raises(ConfigurationError):
        ProviderConfig.from_env()
