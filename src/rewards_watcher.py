#!/usr/bin/env python3
"""
Rewards Watcher

Polls an EVM chain for reward distribution events emitted by one contract and
announces each new reward in a Telegram chat. A second periodic task posts
aggregate statistics (total distributed, contract balance, holders).

Components:
1. reward_scanner - cursor -> fetch -> validate -> dedup -> notify -> commit
2. stats_publisher - periodic snapshot of the distributor's views
3. health_server - liveness endpoint for the hosting platform

Usage:
    rewards-watcher start [--once] [--no-telegram] [--start-block N]
    rewards-watcher status
    rewards-watcher reset
    rewards-watcher test-telegram
    rewards-watcher config list|show|validate
"""

import argparse
import logging
import signal
import sys
from typing import Any, Dict, Optional

from chain_reader import ChainReader, ChainReadError, EventSpec
from config_manager import ConfigError, ConfigManager, get_config_manager, reset_config_manager_instance
from event_validator import EventValidator
from health_server import HealthServer
from logger_utils import setup_logging
from notifier import TelegramNotifier
from pipeline_state import PipelineState, StateStore, restore_state
from reward_scanner import RewardScanner
from rpc_failover import EVMProviderPool
from scheduler import Scheduler
from stats_publisher import StatsPublisher
from token_meta import resolve_token_meta

logger = logging.getLogger(__name__)


class StartupError(RuntimeError):
    """The watcher cannot start (no chain connection or no starting cursor)"""
    pass


class RewardsWatcher:
    def __init__(
        self,
        config_manager: ConfigManager,
        disable_telegram: bool = False,
        start_block: Optional[int] = None,
        reward_interval: Optional[int] = None,
        stats_interval: Optional[int] = None,
        enable_health_server: bool = True,
    ):
        self.config_manager = config_manager
        self.start_block = start_block
        self.dry_run = disable_telegram
        self.reward_interval = reward_interval or config_manager.get_reward_check_interval()
        self.stats_interval = stats_interval or config_manager.get_stats_interval()

        self.distributor_address = config_manager.get_distributor_contract()
        self.reward_token_address = config_manager.get_reward_token()
        self.event_config = config_manager.get_reward_event()
        self.event = EventSpec.parse(self.event_config['signature'])

        self.pool = EVMProviderPool(
            config_manager.get_evm_rpc_urls(),
            request_timeout_s=config_manager.get_rpc_timeout(),
            preference_reset_minutes=config_manager.get_rpc_preference_reset_minutes(),
        )
        self.reader = ChainReader(self.pool)
        self.notifier = TelegramNotifier(
            bot_token=config_manager.get_telegram_bot_token(),
            chat_id=config_manager.get_telegram_chat_id(),
            disabled=disable_telegram,
        )
        self.store = StateStore(config_manager.get_state_file())
        self.scheduler = Scheduler()
        self.health_server = HealthServer(config_manager.get_health_port()) if enable_health_server else None

        self.state: Optional[PipelineState] = None
        self.scanner: Optional[RewardScanner] = None
        self.stats_publisher: Optional[StatsPublisher] = None

        logger.info(f"Initialized RewardsWatcher for {config_manager.get_display_name()} ({config_manager.get_evm_chain()})")
        logger.info(f"Distributor: {self.distributor_address}")
        logger.info(f"Reward token: {self.reward_token_address}")
        logger.info(f"Reward event: {self.event.canonical_signature}")

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def initialize(self) -> PipelineState:
        """Connect, resolve token metadata and the starting cursor; raises StartupError"""
        try:
            current_block = self.reader.get_block_number()
        except ChainReadError as exc:
            raise StartupError(f"Could not connect to any EVM RPC: {exc}") from exc
        logger.info(f"📦 Connected via {self.pool.active_url} at block {current_block}")

        token_meta = resolve_token_meta(
            self.reader, self.reward_token_address, self.config_manager.get_fallback_token()
        )

        try:
            state = restore_state(
                self.store.load(),
                current_block=current_block,
                token_meta=token_meta,
                lookback_limit=self.config_manager.get_lookback_blocks(),
                dedup_capacity=self.config_manager.get_dedup_capacity(),
                start_block=self.start_block,
            )
        except (TypeError, ValueError) as exc:
            raise StartupError(f"Could not restore starting cursor: {exc}") from exc

        self.state = state
        self.scanner = self._build_scanner()
        self.stats_publisher = self._build_stats_publisher()
        self.stats_publisher.prime(state)
        if self.dry_run:
            logger.info("Dry run: watcher state will not be saved")
        return state

    def _build_scanner(self) -> RewardScanner:
        cm = self.config_manager

        amount_view = cm.get_view_signature('distribution_amount')
        amount_reader = None
        if amount_view:
            def amount_reader(recipient: str) -> int:
                return self.reader.view_call(self.distributor_address, amount_view, [recipient])

        validator = EventValidator(
            min_amount=cm.get_min_amount(),
            max_amount=cm.get_max_amount(),
            amount_reader=amount_reader,
            recipient_arg=self.event_config['recipient_arg'],
            amount_arg=self.event_config['amount_arg'],
            key_mode=cm.get_event_key_mode(),
        )

        indexed_filters: Dict[str, Any] = {}
        sender = cm.get_event_from_filter()
        if sender:
            indexed_filters[self.event_config['sender_arg']] = sender

        return RewardScanner(
            reader=self.reader,
            validator=validator,
            notifier=self.notifier,
            event=self.event,
            event_address=cm.get_event_contract(),
            indexed_filters=indexed_filters,
            explorer_tx_url=cm.get_explorer_tx_url(),
            media_ref=cm.get_media_ref('reward'),
            tz_name=cm.get_display_timezone(),
            block_batch_size=cm.get_block_batch_size(),
            notify_delay=cm.get_notify_delay(),
            # a dry run must not mark events as announced for later real runs
            store=None if self.dry_run else self.store,
        )

    def _build_stats_publisher(self) -> StatsPublisher:
        cm = self.config_manager
        return StatsPublisher(
            reader=self.reader,
            notifier=self.notifier,
            distributor_address=self.distributor_address,
            reward_token_address=self.reward_token_address,
            total_distributed_view=cm.get_view_signature('total_distributed'),
            holder_count_view=cm.get_view_signature('holder_count'),
            title=cm.get_display_name(),
            interval_seconds=self.stats_interval,
            media_ref=cm.get_media_ref('stats'),
            tz_name=cm.get_display_timezone(),
        )

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def scan_rewards(self) -> Dict[str, Any]:
        stats = self.scanner.run_cycle(self.state)
        if stats["window"] is not None:
            suffix = " (aborted)" if stats["aborted"] else ""
            logger.info(
                f"Reward scan complete | events: {stats['events']} | notified: {stats['notified']} | "
                f"rejected: {stats['rejected']} | duplicates: {stats['duplicates']} | "
                f"cursor: {stats['last_processed_block']}{suffix}"
            )
        return stats

    def publish_stats(self) -> bool:
        return self.stats_publisher.publish(self.state)

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully"""
        logger.info(f"🛑 Received signal {signum}, shutting down gracefully...")
        self.scheduler.stop()

    def run_continuous(self) -> None:
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        if self.health_server is not None:
            self.health_server.start()

        try:
            self.initialize()
            logger.info(
                f"🤖 Watcher started (reward scan every {self.reward_interval}s, "
                f"stats every {self.stats_interval}s)"
            )
            self.scheduler.add_task("stats update", self.stats_interval, self.publish_stats)
            self.scheduler.add_task("reward scan", self.reward_interval, self.scan_rewards)
            self.scheduler.run_forever()
        finally:
            self.shutdown()

    def run_once(self) -> bool:
        """Run one reward scan and one stats update; True when both succeeded"""
        try:
            self.initialize()
            scan_stats = self.scan_rewards()
            stats_sent = self.publish_stats()
        finally:
            self.shutdown()
        return not scan_stats["aborted"] and stats_sent

    def shutdown(self) -> None:
        if self.health_server is not None:
            self.health_server.shutdown()
        self.notifier.close()
        logger.info("✅ Shutdown complete")

    def show_status(self) -> None:
        saved = self.store.load()
        print(f"📋 Active Config: {self.config_manager.get_display_name()}")
        print(f"📂 State File: {self.store.state_file}")
        if not saved:
            print("🕐 No saved state (next start begins at the chain head)")
            return
        print(f"📦 Last Processed Block: {saved.get('last_processed_block', 'unknown')}")
        print(f"🧾 Remembered Events: {len(saved.get('seen_event_keys', []))}")
        print(f"💰 Last Total Distributed: {saved.get('last_total_distributed') or 'N/A'}")
        print(f"🕐 Last Run: {saved.get('last_run', 'Never')}")

    def reset(self) -> None:
        if self.store.reset():
            logger.info(f"🗑️  Removed {self.store.state_file}")
            logger.info("💡 Next start begins at the chain head")
        else:
            logger.info("Nothing to reset")


def send_test_message(config_manager: ConfigManager) -> bool:
    notifier = TelegramNotifier(
        bot_token=config_manager.get_telegram_bot_token(),
        chat_id=config_manager.get_telegram_chat_id(),
    )
    try:
        return notifier.send_message(
            f"🧪 *Test message* from {config_manager.get_display_name()} rewards watcher",
            config_manager.get_media_ref('reward'),
        )
    finally:
        notifier.close()


def print_config_details(config_manager: ConfigManager) -> None:
    active = config_manager.get_active_config()
    print(f"Name: {config_manager.get_active_config_name()}")
    print(f"Display Name: {config_manager.get_display_name()}")
    print(f"EVM Chain: {config_manager.get_evm_chain()}")
    print(f"Distributor: {active.get('distributor_contract')}")
    print(f"Reward Token: {active.get('reward_token')}")
    print(f"Reward Event: {config_manager.get_reward_event()['signature']}")
    print(f"RPC Endpoints: {len(config_manager.get_evm_rpc_urls())}")
    print(f"Reward Interval: {config_manager.get_reward_check_interval()}s")
    print(f"Stats Interval: {config_manager.get_stats_interval()}s")
    print(f"Lookback: {config_manager.get_lookback_blocks()} blocks")
    print(f"Thresholds: {config_manager.get_min_amount()} - {config_manager.get_max_amount()}")
    print(f"Data Directory: {config_manager.get_data_dir()}")


def add_common_arguments(parser: argparse.ArgumentParser, with_defaults: bool = True) -> None:
    # subcommands must not overwrite flags given before the subcommand name
    kwargs = {} if with_defaults else {'default': argparse.SUPPRESS}
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging', **kwargs)
    parser.add_argument('--no-color', action='store_true', help='Disable colored output', **kwargs)
    parser.add_argument('--config', type=str, help='Configuration profile to use (overrides ACTIVE_CONFIG)', **kwargs)
    parser.add_argument('--log-file', type=str, help='Also write logs to this file', **kwargs)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    add_common_arguments(common, with_defaults=False)

    parser = argparse.ArgumentParser(
        description="Rewards Watcher - reward distribution notifier",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rewards-watcher start                      # start continuous monitoring
  rewards-watcher start --once               # one scan and one stats update, then exit
  rewards-watcher start --no-telegram        # log messages instead of sending them
  rewards-watcher start --start-block 123456 # rescan from a given block
  rewards-watcher --config itm-base status   # show saved state for a profile
  rewards-watcher reset                      # forget cursor and seen events
  rewards-watcher test-telegram              # send a test message
        """,
    )
    add_common_arguments(parser)

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    start_parser = subparsers.add_parser('start', parents=[common], help='Start the watcher')
    start_parser.add_argument('--once', action='store_true', help='Run once instead of continuously')
    start_parser.add_argument('--no-telegram', action='store_true', help='Disable Telegram messages (log only, state is not saved)')
    start_parser.add_argument('--start-block', type=int, help='Override the saved cursor')
    start_parser.add_argument('--reward-interval', type=int, help='Reward scan interval in seconds')
    start_parser.add_argument('--stats-interval', type=int, help='Stats update interval in seconds')
    start_parser.add_argument('--no-health', action='store_true', help='Do not start the health endpoint')

    subparsers.add_parser('status', parents=[common], help='Show saved watcher state')
    subparsers.add_parser('reset', parents=[common], help='Delete saved watcher state')
    subparsers.add_parser('test-telegram', parents=[common], help='Send a test Telegram message')

    config_parser = subparsers.add_parser('config', parents=[common], help='Configuration management')
    config_subparsers = config_parser.add_subparsers(dest='config_command', help='Config commands')
    config_subparsers.add_parser('list', help='List available configurations')
    config_subparsers.add_parser('show', help='Show active configuration details')
    validate_parser = config_subparsers.add_parser('validate', help='Validate a configuration')
    validate_parser.add_argument('config_name', nargs='?', help='Configuration to validate (default: active config)')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    setup_logging(verbose=args.verbose, no_color=args.no_color, log_file=args.log_file)

    try:
        if args.config:
            config_manager = reset_config_manager_instance(args.config)
            logger.info(f"🔧 Using configuration: {args.config}")
        else:
            config_manager = get_config_manager()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    try:
        if args.command == 'start':
            watcher = RewardsWatcher(
                config_manager,
                disable_telegram=args.no_telegram,
                start_block=args.start_block,
                reward_interval=args.reward_interval,
                stats_interval=args.stats_interval,
                enable_health_server=not args.once and not args.no_health,
            )
            if args.once:
                if watcher.run_once():
                    logger.info("✅ Single cycle completed successfully")
                    sys.exit(0)
                logger.error("❌ Single cycle failed")
                sys.exit(1)
            watcher.run_continuous()

        elif args.command == 'status':
            RewardsWatcher(config_manager, enable_health_server=False).show_status()

        elif args.command == 'reset':
            RewardsWatcher(config_manager, enable_health_server=False).reset()

        elif args.command == 'test-telegram':
            logger.info("🧪 Testing Telegram delivery...")
            if not send_test_message(config_manager):
                logger.error("❌ Telegram test failed")
                sys.exit(1)
            logger.info("✅ Telegram test message sent")

        elif args.command == 'config':
            if args.config_command is None:
                logger.error("❌ No config subcommand specified")
                sys.exit(1)

            if args.config_command == 'list':
                active = config_manager.get_active_config_name()
                for name, display_name in config_manager.list_configs().items():
                    marker = "🔸" if name == active else "  "
                    print(f"{marker} {name}: {display_name}")
                print(f"\n✅ Active: {active}")

            elif args.config_command == 'show':
                print_config_details(config_manager)

            elif args.config_command == 'validate':
                validation = config_manager.validate_config(args.config_name)
                for warning in validation['warnings']:
                    logger.warning(f"⚠️ {warning}")
                if not validation['valid']:
                    logger.error(f"❌ Configuration '{validation['config_name']}' is invalid:")
                    for error in validation['errors']:
                        print(f"  • {error}")
                    sys.exit(1)
                logger.info(f"✅ Configuration '{validation['config_name']}' is valid")

    except StartupError as e:
        logger.error(f"Startup failed: {e}")
        sys.exit(1)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
