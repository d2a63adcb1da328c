import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import click
from rich.console import Console

from parascope.core.config import ChainConfig, CoreConfig, DecodeConfig, MapperConfig, RegistryCacheConfig
from parascope.core.errors import ParascopeError
from parascope.core.logging_config import configure_logging
from parascope.core.models import BlockQueryParams
from parascope.orchestration.orchestrator import CoreServices, correlate, fetch_block, open_services, resolve_identifier

console = Console()


def _run(config: CoreConfig, request: Callable[[CoreServices], Awaitable[Any]]) -> None:
    async def run() -> Any:
        async with open_services(config) as services:
            return await request(services)

    try:
        result = asyncio.run(run())
    except ParascopeError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}") from e
    console.print_json(data=result)


def _chain_id(config: CoreConfig, chain: str | None) -> str | None:
    if chain == "relay":
        return config.relay.chain_id
    if chain == "asset-hub":
        if config.asset_hub is None:
            raise click.UsageError("--chain asset-hub needs --ah-rpc")
        return config.asset_hub.chain_id
    return None


@click.group()
@click.option("--relay-rpc", envvar="PARASCOPE_RELAY_RPC", required=True, help="Relay chain RPC endpoint URL")
@click.option("--relay-id", envvar="PARASCOPE_RELAY_ID", default="polkadot", show_default=True)
@click.option("--ah-rpc", envvar="PARASCOPE_AH_RPC", default="", help="Asset Hub RPC endpoint URL")
@click.option("--ah-id", envvar="PARASCOPE_AH_ID", default="asset-hub-polkadot", show_default=True)
@click.option("--para-id", envvar="PARASCOPE_PARA_ID", type=int, default=1000, show_default=True)
@click.option("--window", envvar="PARASCOPE_WINDOW", type=int, default=16, show_default=True,
              help="Parachain heights scanned per attested head")
@click.option("--concurrency", envvar="PARASCOPE_CONCURRENCY", type=int, default=16, show_default=True,
              help="Max parallel extrinsic decodes")
@click.option("--timeout", "timeout_s", envvar="PARASCOPE_TIMEOUT", type=int, default=20, show_default=True)
@click.option("--cache-size", envvar="PARASCOPE_CACHE_SIZE", type=int, default=32, show_default=True,
              help="Metadata registries kept in memory")
@click.option("--strict/--no-strict", default=False, show_default=True,
              help="Fail the request instead of embedding per-item error markers")
@click.option("--json-logs/--console-logs", default=True, show_default=True)
@click.pass_context
def cli(
    ctx: click.Context,
    relay_rpc: str,
    relay_id: str,
    ah_rpc: str,
    ah_id: str,
    para_id: int,
    window: int,
    concurrency: int,
    timeout_s: int,
    cache_size: int,
    strict: bool,
    json_logs: bool,
) -> None:
    """parascope: relay chain + Asset Hub block reader."""
    configure_logging(json_output=json_logs)
    ctx.obj = CoreConfig(
        relay=ChainConfig(chain_id=relay_id, rpc_url=relay_rpc, timeout_s=timeout_s),
        asset_hub=ChainConfig(chain_id=ah_id, rpc_url=ah_rpc, timeout_s=timeout_s) if ah_rpc else None,
        decode=DecodeConfig(concurrency=concurrency, strict=strict),
        cache=RegistryCacheConfig(max_entries=cache_size),
        mapper=MapperConfig(para_id=para_id, window=window),
    )


@cli.command("block")
@click.argument("at", required=False)
@click.option("--chain", type=click.Choice(["relay", "asset-hub"]), default=None,
              help="Chain to read (default: Asset Hub when configured)")
@click.option("--use-rc-block", is_flag=True, help="Treat AT as a relay block and decode the Asset Hub blocks it attests")
@click.option("--decode-xcm", is_flag=True, help="Attach decoded XCM messages")
@click.option("--xcm-para-id", type=int, default=None, help="Only keep XCM messages for this para id")
@click.option("--evm", "use_evm", is_flag=True, help="Render Revive account ids as EVM addresses")
@click.option("--no-fees", is_flag=True)
@click.option("--extrinsic-docs", is_flag=True)
@click.option("--event-docs", is_flag=True)
@click.option("--finalized/--no-finalized", default=True, show_default=True, help="Report finalization status")
@click.pass_obj
def block_cmd(
    config: CoreConfig,
    at: str | None,
    chain: str | None,
    use_rc_block: bool,
    decode_xcm: bool,
    xcm_para_id: int | None,
    use_evm: bool,
    no_fees: bool,
    extrinsic_docs: bool,
    event_docs: bool,
    finalized: bool,
) -> None:
    """Decode the block AT (number, hash, 'head' or 'latest'; default 'head')."""
    params = BlockQueryParams(
        at=at,
        useRcBlock=use_rc_block,
        decodeXcmMsgs=decode_xcm,
        paraId=xcm_para_id,
        useEvmFormat=use_evm,
        noFees=no_fees,
        extrinsicDocs=extrinsic_docs,
        eventDocs=event_docs,
        finalized=finalized,
    )
    chain_id = _chain_id(config, chain)
    _run(config, lambda services: fetch_block(services, params, chain_id=chain_id))


@cli.command("resolve")
@click.argument("at", required=False)
@click.option("--chain", type=click.Choice(["relay", "asset-hub"]), default=None)
@click.option("--use-rc-block", is_flag=True)
@click.pass_obj
def resolve_cmd(config: CoreConfig, at: str | None, chain: str | None, use_rc_block: bool) -> None:
    """Resolve AT to block snapshots without decoding bodies."""
    chain_id = _chain_id(config, chain)
    _run(config, lambda services: resolve_identifier(services, at, use_rc_block=use_rc_block, chain_id=chain_id))


@cli.command("rc-map")
@click.argument("relay_block", required=False)
@click.pass_obj
def rc_map_cmd(config: CoreConfig, relay_block: str | None) -> None:
    """List the Asset Hub blocks attested by RELAY_BLOCK."""
    _run(config, lambda services: correlate(services, relay_block))
