"""
Command line front end for a persisted chain game.

Examples:
    chain-reaction --db ./data state
    chain-reaction --db ./data start --sender <hex> --payment 10 --duration-ms 120000 --multiplier-bps 1000
    chain-reaction --db ./data join --sender <hex> --payment 11
    chain-reaction --db ./data end --sender <hex>
    chain-reaction --db ./data events --since 0
"""
import argparse
import json
import logging
import sys

from chain_reaction.assets import AssetId
from chain_reaction.config import Config
from chain_reaction.crypto import parse_address
from chain_reaction.errors import ValidationError
from chain_reaction.game import ChainReaction

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chain-reaction", description="Chain game operator tool")
    parser.add_argument('--config', help="Path to JSON config file")
    parser.add_argument('--db', help="Database path (overrides config)")
    parser.add_argument('--verbose', '-v', action='store_true', help="Debug logging")

    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('state', help="Show the current chain state")

    start = sub.add_parser('start', help="Start a new chain")
    start.add_argument('--sender', required=True)
    start.add_argument('--payment', type=int, required=True)
    start.add_argument('--duration-ms', type=int, required=True)
    start.add_argument('--multiplier-bps', type=int, required=True)
    start.add_argument('--burn-bps', type=int, default=0)
    start.add_argument('--asset', default='native', help="'native' or a hex token id")

    join = sub.add_parser('join', help="Join the running chain")
    join.add_argument('--sender', required=True)
    join.add_argument('--payment', type=int, help="Defaults to the next entry price")
    join.add_argument('--asset', default='native')

    end = sub.add_parser('end', help="Settle an expired chain")
    end.add_argument('--sender', required=True)

    boost = sub.add_parser('boost', help="Add to the prize without resetting the countdown")
    boost.add_argument('--sender', required=True)
    boost.add_argument('--amount', type=int, required=True)
    boost.add_argument('--asset', default='native')

    events = sub.add_parser('events', help="List events from a cursor")
    events.add_argument('--since', type=int, default=0)
    events.add_argument('--limit', type=int)

    return parser


def run(args, game: ChainReaction) -> dict:
    if args.command == 'state':
        return game.get_game_state()

    if args.command == 'events':
        return {'events': [e.to_dict(hex_encode=True) for e in game.events_since(args.since, args.limit)]}

    sender = parse_address(args.sender)

    if args.command == 'start':
        event = game.start(
            sender, args.payment, args.duration_ms, args.multiplier_bps,
            asset_id=AssetId.parse(args.asset), burn_bps=args.burn_bps,
        )
    elif args.command == 'join':
        payment = args.payment if args.payment is not None else game.next_entry_price()
        event = game.join(sender, payment, asset=AssetId.parse(args.asset))
    elif args.command == 'end':
        event = game.end(sender)
    elif args.command == 'boost':
        event = game.boost(sender, args.amount, asset=AssetId.parse(args.asset))
    else:
        raise ValueError(f"Unknown command: {args.command}")

    return event.to_dict(hex_encode=True)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = Config.from_file(args.config) if args.config else Config.default()
    if args.db:
        config.database.path = args.db

    game = ChainReaction.from_config(config)
    try:
        result = run(args, game)
    except ValidationError as e:
        print(f"Error [{e.code}] {e.__class__.__name__}: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        game.close()

    print(json.dumps(result, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
