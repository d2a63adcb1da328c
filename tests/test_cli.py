import json
from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from fake_chain import FakeChain
from scale_builder import timestamp_call, unsigned_extrinsic

from parascope.cli import cli
from parascope.core.config import CoreConfig
from parascope.orchestration.orchestrator import build_services


@pytest.fixture
def fake_services(relay_chain: FakeChain, asset_hub_chain: FakeChain):
    relay_chain.add_block(0)
    relay_chain.add_block(1)
    asset_hub_chain.add_block(0, extrinsics=[unsigned_extrinsic(timestamp_call(42))])
    seen: list[CoreConfig] = []

    @asynccontextmanager
    async def _open(config: CoreConfig):
        seen.append(config)
        yield build_services(config, {config.relay.chain_id: relay_chain, config.asset_hub.chain_id: asset_hub_chain})

    with patch("parascope.cli.open_services", _open), patch("parascope.cli.configure_logging") as configure:
        yield seen, configure


BASE_ARGS = ["--relay-rpc", "http://relay:9944", "--ah-rpc", "http://ah:9944", "--console-logs"]


def test_block_command_prints_json(fake_services, asset_hub_chain: FakeChain) -> None:
    result = CliRunner().invoke(cli, [*BASE_ARGS, "block", "0", "--no-finalized"])

    assert result.exit_code == 0, result.output
    block = json.loads(result.stdout)
    assert block["hash"] == asset_hub_chain.canonical[0]
    assert block["extrinsics"][0]["args"] == {"now": "42"}
    assert "finalized" not in block


def test_options_build_config(fake_services) -> None:
    args = [*BASE_ARGS, "--para-id", "2000", "--window", "4", "--strict", "--cache-size", "8", "resolve", "head"]

    result = CliRunner().invoke(cli, args)

    assert result.exit_code == 0, result.output
    seen, configure = fake_services
    [config] = seen
    configure.assert_called_once_with(json_output=False)
    assert config.mapper.para_id == 2000
    assert config.mapper.window == 4
    assert config.decode.strict is True
    assert config.cache.max_entries == 8
    assert config.asset_hub is not None and config.asset_hub.rpc_url == "http://ah:9944"


def test_resolve_on_relay_chain(fake_services, relay_chain: FakeChain) -> None:
    result = CliRunner().invoke(cli, [*BASE_ARGS, "resolve", "latest", "--chain", "relay"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout) == [
        {
            "chainId": "polkadot",
            "number": "1",
            "hash": relay_chain.canonical[1],
            "parentHash": relay_chain.canonical[0],
            "specVersion": "1",
        }
    ]


def test_core_errors_become_click_errors(fake_services) -> None:
    result = CliRunner().invoke(cli, [*BASE_ARGS, "block", "99"])

    assert result.exit_code == 1
    assert "BlockNotFound" in result.output


def test_malformed_identifier(fake_services) -> None:
    result = CliRunner().invoke(cli, [*BASE_ARGS, "resolve", "0x1234"])

    assert result.exit_code == 1
    assert "BlockIdentifierError" in result.output


def test_relay_rpc_is_required() -> None:
    result = CliRunner().invoke(cli, ["block"], env={"PARASCOPE_RELAY_RPC": ""})

    assert result.exit_code == 2
