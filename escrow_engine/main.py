"""Escrow engine operations CLI."""
import asyncio
from datetime import datetime
import click
from loguru import logger
from pydantic import ValidationError

from .core import EngineConfig, EngineRuntime, EscrowError
from .core.config import configure_logging
from .core.rake import split as split_pot
from .core.wager import DEFAULT_TOKEN_DECIMALS, to_ui_amount


@click.group()
@click.version_option(package_name="escrow-engine")
@click.pass_context
def cli(ctx):
    """Escrow settlement engine for staked matches."""
    try:
        config = EngineConfig.from_env()
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration: {e}")
    configure_logging(config.log_level)
    ctx.obj = EngineRuntime(config)


@cli.command()
@click.pass_obj
def status(runtime: EngineRuntime):
    """Show custodial wallet, store and rake status."""
    async def _status():
        try:
            service = await runtime.open()
            return service.get_status()
        finally:
            runtime.close()

    try:
        info = asyncio.run(_status())
    except EscrowError as e:
        logger.error(f"Failed to check status: {e}")
        raise SystemExit(1)

    rake = info["rake"]
    click.echo("\nEscrow Engine Status:")
    click.echo("-" * 60)
    click.echo(f"Custodial ready:     {'yes' if info['ready'] else 'no'}")
    click.echo(f"Custodial wallet:    {info['custodial_wallet'] or 'unknown'}")
    click.echo(f"Match store:         {'connected' if info['store_connected'] else 'disconnected'}")
    if rake["enabled"]:
        click.echo(f"Rake:                {rake['percent']}% to {rake['wallet']} (min pot {rake['min_pot_raw']} raw)")
    else:
        click.echo("Rake:                disabled")


@cli.command()
@click.pass_obj
def recover(runtime: EngineRuntime):
    """Run the startup recovery sweeps once and report what they did."""
    async def _recover():
        try:
            service = await runtime.open()
            return await service.startup()
        finally:
            runtime.close()

    try:
        report = asyncio.run(_recover())
    except EscrowError as e:
        logger.error(f"Recovery failed: {e}")
        raise SystemExit(1)

    summary = report.recovery
    click.echo("\nRecovery Results:")
    click.echo("-" * 60)
    click.echo(f"Orphaned matches:    {summary.total}")
    click.echo(f"  Recovered:         {summary.recovered}")
    click.echo(f"  Failed:            {summary.failed}")
    if summary.error:
        click.echo(f"  Error:             {summary.error}")
    click.echo(f"Flagged for review:  {report.reconciled}")


@cli.command(name="audit-log")
@click.option('--limit', default=20, help='Number of entries to show')
@click.pass_obj
def audit_log(runtime: EngineRuntime, limit: int):
    """Show recent custodial signer audit entries."""
    try:
        entries = asyncio.run(runtime.get_signer().get_audit_log(limit))
    except EscrowError as e:
        logger.error(f"Failed to fetch audit log: {e}")
        raise SystemExit(1)

    if not entries:
        click.echo("No audit entries found")
        return

    click.echo(f"\nLast {len(entries)} signer operations:")
    click.echo("-" * 80)
    click.echo(f"{'Time':<20}{'Type':<10}{'Match':<24}{'Amount (raw)':<16}{'Status':<10}")
    click.echo("-" * 80)
    for entry in entries:
        timestamp = entry.get("timestamp")
        if isinstance(timestamp, (int, float)):
            timestamp = datetime.fromtimestamp(timestamp / 1000).strftime('%Y-%m-%d %H:%M')
        click.echo(
            f"{str(timestamp or '-'):<20}"
            f"{str(entry.get('type', '-')):<10}"
            f"{str(entry.get('matchId', '-')):<24}"
            f"{str(entry.get('amountRaw', '-')):<16}"
            f"{'ok' if entry.get('success') else 'FAILED':<10}"
        )


@cli.command()
@click.argument('pot', type=int)
@click.option('--decimals', default=DEFAULT_TOKEN_DECIMALS, help='Token decimals for display')
@click.pass_obj
def split(runtime: EngineRuntime, pot: int, decimals: int):
    """Preview how a pot of POT raw units would be split."""
    if pot < 0:
        raise click.BadParameter("pot cannot be negative", param_hint="POT")

    rake_config = runtime.config.rake_config()
    result = split_pot(pot, rake_config)

    click.echo(f"Pot:            {pot} raw ({to_ui_amount(pot, decimals)})")
    click.echo(f"Rake:           {result.rake_raw} raw ({to_ui_amount(result.rake_raw, decimals)})")
    click.echo(f"Winner payout:  {result.winner_payout_raw} raw ({to_ui_amount(result.winner_payout_raw, decimals)})")
    if result.rake_enabled:
        click.echo(f"Rake applied at {rake_config.rake_percent}% ({rake_config.rake_basis_points} bps)")
    elif not rake_config.enabled:
        click.echo("Rake disabled: no rake wallet configured")
    else:
        click.echo(f"Rake not applied: pot below minimum of {rake_config.min_pot_for_rake} raw")


if __name__ == "__main__":
    cli()
