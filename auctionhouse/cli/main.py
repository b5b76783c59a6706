"""
Auction House CLI - Command Line Interface for the NFT auction engines.

Main entry point for all CLI commands.
"""

import logging

import click

from auctionhouse.utils.logger import setup_logging, get_logger


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False),
              help="JSON config file")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, config_path):
    """NFT auction house - English and second-price auction engines"""
    from auctionhouse.core.config import load_config

    cfg = load_config(config_path)
    level = logging.DEBUG if debug else getattr(logging, cfg.log_level.upper(), logging.INFO)
    setup_logging(level=level, log_dir=str(cfg.log_dir), log_to_file=cfg.log_to_file)

    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg


# =============================================================================
# Demo Command
# =============================================================================


def _build_engine(variant, cfg):
    from auctionhouse.core.auction import EngineContext, create_engine
    from auctionhouse.core.clock import ManualClock
    from auctionhouse.core.escrow import AccountBook
    from auctionhouse.core.nft import InMemoryNFT, NFTDirectory

    nft = InMemoryNFT(name="AuctionToken", symbol="ATK")
    context = EngineContext(
        clock=ManualClock(),
        nft_directory=NFTDirectory([nft]),
        gateway=AccountBook(),
    )
    # Demo clock counts seconds regardless of the configured deployment unit
    engine = create_engine(variant, context=context, config=_timestamp_config(cfg))
    return engine, nft


def _timestamp_config(cfg):
    from dataclasses import replace

    return cfg if cfg.time_unit == "timestamp" else replace(cfg, time_unit="timestamp")


@cli.command("demo")
@click.option("--variant", type=click.Choice(["english", "second-price"]), default="english",
              help="Auction variant to run")
@click.option("--duration", default=None, type=int, help="Auction duration in seconds (config default if omitted)")
@click.pass_context
def demo(ctx, variant, duration):
    """Run a full auction: list, bid, end, withdraw"""
    from auctionhouse.core.errors import AuctionError
    from auctionhouse.crypto import generate_accounts
    from auctionhouse.utils.units import from_wei, to_wei

    logger = get_logger("cli")
    cfg = ctx.obj["config"]
    engine, nft = _build_engine(variant, cfg)
    clock = engine.context.clock
    book = engine.context.gateway
    creator, alice, bob = generate_accounts(3)

    click.echo("=" * 60)
    click.echo(f"  NFT AUCTION HOUSE - {variant.upper()} DEMO")
    click.echo("=" * 60)
    click.echo()

    # Listing
    click.echo("Listing token #1...")
    nft.mint(creator, 1)
    nft.approve(creator, engine.address, 1)
    increment = to_wei("0.1") if variant == "second-price" else None
    auction = engine.create_auction(1, nft.address, 1, duration, increment, to_wei("0.5"), creator)
    duration = auction.auction_end_time - auction.created_at
    increment = auction.min_bid_increment
    click.echo(f"  Creator: {creator}")
    click.echo(f"  Reserve: 0.5 ETH, increment {from_wei(increment)} ETH, {duration}s")
    click.echo()

    # Bidding
    bids = [(alice, to_wei("1")), (bob, to_wei("2"))]
    for bidder, amount in bids:
        book.fund(bidder, to_wei("10"))
    click.echo("Bidding...")
    for bidder, amount in bids:
        try:
            book.charge(bidder, amount)
            engine.bid(1, bidder, amount)
        except AuctionError as e:
            book.fund(bidder, amount)
            click.echo(f"  Rejected {from_wei(amount)} ETH from {bidder[:10]}...: {e}")
            continue
        click.echo(f"  {bidder[:10]}... bid {from_wei(amount)} ETH")
    click.echo()

    # Settlement
    clock.advance(duration)
    auction = engine.end_auction(1, creator)
    click.echo("Settling...")
    click.echo(f"  Winner: {auction.highest_bidder}")
    click.echo(f"  Token owner: {nft.owner_of(1)}")
    if variant == "second-price":
        click.echo(f"  Price paid: {from_wei(auction.second_highest_bid)} ETH")
    click.echo()

    # Withdrawals
    click.echo("Withdrawing...")
    parties = [creator] if variant == "english" else [creator, alice, bob]
    for party in parties:
        amount = engine.withdraw(1, party)
        click.echo(f"  {party[:10]}... withdrew {from_wei(amount)} ETH")
    click.echo()

    click.echo("Final balances:")
    for name, party in (("creator", creator), ("alice", alice), ("bob", bob)):
        click.echo(f"  {name}: {from_wei(book.balance_of(party))} ETH")
    click.echo(f"  held by engine: {from_wei(engine.held_value())} ETH")
    click.echo()

    logger.debug(f"Demo stats: {engine.stats()}")
    click.echo("Demo complete!")


# =============================================================================
# Stats Command
# =============================================================================


@cli.command("stats")
@click.pass_context
def stats(ctx):
    """Show configuration and available engines"""
    from auctionhouse.core.auction import ENGINE_VARIANTS
    from auctionhouse.utils.units import from_wei

    cfg = ctx.obj["config"]
    click.echo("Auction House Statistics")
    click.echo("-" * 40)
    click.echo("  Version: 0.1.0")
    click.echo(f"  Variants: {', '.join(sorted(ENGINE_VARIANTS))}")
    click.echo(f"  Time unit: {cfg.time_unit}")
    click.echo(f"  Default duration: {cfg.default_duration}")
    click.echo(f"  Default increment: {from_wei(cfg.default_min_bid_increment)} ETH")
    click.echo(f"  Max duration: {cfg.max_duration}")
    click.echo(f"  Log level: {cfg.log_level}")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
