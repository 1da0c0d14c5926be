#!/usr/bin/env python3
"""
Configuration Manager for Rewards Watcher

Supports multiple watcher profiles with:
1. Environment variable substitution (${VAR} and ${VAR:-default} patterns)
2. Configuration validation
3. Directory-based data organization
4. Environment overrides for deployment-specific values (PORT, intervals)

All values are read once at startup and stay static for the process lifetime.
"""

import os
import json
import re
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, List, Optional
from pathlib import Path

from dotenv import load_dotenv

# look for .env file in the repository root
load_dotenv(Path(__file__).parent.parent / '.env')

DEFAULT_CONFIG_FILE = "config.json"

# pattern to match ${VAR_NAME} or ${VAR_NAME:-default}
ENV_VAR_PATTERN = re.compile(r'\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}')

EVENT_KEY_MODES = ("tx", "tx_log")

DEFAULT_REWARD_EVENT = "Transfer(address indexed from, address indexed to, uint256 value)"


class ConfigError(ValueError):
    """Raised when the configuration file is missing, malformed or incomplete"""
    pass


class ConfigManager:
    """Configuration manager supporting multiple watcher profiles"""

    def __init__(self, config_file: Optional[str] = None, config_name_override: Optional[str] = None):
        self.config_file = config_file or os.getenv('REWARDS_WATCHER_CONFIG', DEFAULT_CONFIG_FILE)
        self._config_data: Dict[str, Any] = {}
        self._active_config_name: Optional[str] = None
        self._active_config: Dict[str, Any] = {}
        self._config_name_override = config_name_override
        self._load_config()
        self._load_active_config()

    def _resolve_config_path(self) -> Path:
        path = Path(self.config_file)
        if path.is_absolute():
            return path
        return Path(__file__).parent.parent / path

    def _load_config(self):
        """Load configuration from JSON file"""
        config_path = self._resolve_config_path()

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                content = self._substitute_env_vars(f.read())
                self._config_data = json.loads(content)
        except FileNotFoundError:
            raise ConfigError(f"Config file {config_path} not found")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config file {config_path}: {e}")

    @staticmethod
    def _substitute_env_vars(content: str) -> str:
        """Substitute ${VAR} and ${VAR:-default} patterns with environment variables"""
        def replace_var(match):
            var_name, default = match.group(1), match.group(2)
            env_value = os.getenv(var_name)
            if env_value is None:
                if default is None:
                    raise ConfigError(f"Environment variable {var_name} is not set")
                return default
            # values land inside JSON strings
            return json.dumps(env_value)[1:-1]

        return ENV_VAR_PATTERN.sub(replace_var, content)

    def _load_active_config(self):
        """Load the active configuration based on override, ACTIVE_CONFIG env var, or default"""
        configs = self.get_available_configs()

        self._active_config_name = self._config_name_override or os.getenv('ACTIVE_CONFIG')
        if not self._active_config_name:
            if not configs:
                raise ConfigError("No configurations available and ACTIVE_CONFIG not set")
            self._active_config_name = next(iter(configs))

        if self._active_config_name not in configs:
            raise ConfigError(
                f"Active config '{self._active_config_name}' not found. Available: {list(configs)}"
            )

        self._active_config = configs[self._active_config_name]

    def get_available_configs(self) -> Dict[str, Any]:
        """Get all available configurations"""
        return self._config_data.get("configs", {})

    def get_active_config_name(self) -> str:
        """Get the name of the active configuration"""
        return self._active_config_name

    def get_active_config(self) -> Dict[str, Any]:
        """Get the active configuration"""
        return dict(self._active_config)

    def list_configs(self) -> Dict[str, str]:
        """List all available configurations with display names"""
        return {
            name: config.get('display_name', name)
            for name, config in self.get_available_configs().items()
        }

    def validate_config(self, config_name: Optional[str] = None) -> Dict[str, Any]:
        """Validate a configuration and return validation results"""
        name = config_name or self._active_config_name
        config = self.get_available_configs().get(name)

        if not config:
            return {"valid": False, "errors": ["Configuration not found"], "warnings": [], "config_name": name}

        errors: List[str] = []
        warnings: List[str] = []

        def _is_http_url(s: Any) -> bool:
            return isinstance(s, str) and s.startswith(('http://', 'https://'))

        def _is_address(s: Any) -> bool:
            return isinstance(s, str) and s.startswith('0x') and len(s) == 42

        for field in ('distributor_contract', 'reward_token', 'data_dir'):
            if field not in config:
                errors.append(f"Missing required field: {field}")

        evm_urls = config.get('evm_rpc_urls')
        evm_url = config.get('evm_rpc_url')
        if evm_urls is not None:
            if not isinstance(evm_urls, list) or not evm_urls or not all(_is_http_url(u) for u in evm_urls):
                errors.append("evm_rpc_urls must be a non-empty list of HTTP/HTTPS URLs")
        elif evm_url is not None:
            if not _is_http_url(evm_url):
                errors.append("evm_rpc_url must be a valid HTTP/HTTPS URL")
        else:
            errors.append("Missing required field: evm_rpc_url or evm_rpc_urls")

        for field in ('distributor_contract', 'reward_token', 'event_contract', 'event_from_filter'):
            value = config.get(field)
            if value and not _is_address(value):
                errors.append(f"{field} must be a valid Ethereum address (0x...)")

        telegram = config.get('telegram', {})
        if not telegram.get('bot_token'):
            warnings.append("telegram.bot_token is empty; notifications will fail")
        if not telegram.get('chat_id'):
            warnings.append("telegram.chat_id is empty; notifications will fail")

        thresholds = config.get('thresholds', {})
        try:
            min_amount = Decimal(str(thresholds.get('min_amount', '0.000001')))
            max_amount = Decimal(str(thresholds.get('max_amount', '1000000')))
            if min_amount < 0:
                errors.append("thresholds.min_amount must not be negative")
            if max_amount <= min_amount:
                errors.append("thresholds.max_amount must be greater than thresholds.min_amount")
        except InvalidOperation:
            errors.append("thresholds must be decimal numbers")

        mode = self.get_defaults().get('event_key_mode', 'tx_log')
        if mode not in EVENT_KEY_MODES:
            errors.append(f"defaults.event_key_mode must be one of {EVENT_KEY_MODES}")

        if not config.get('media', {}).get('reward'):
            warnings.append("media.reward not set; reward notifications will be plain text")

        return {
            "valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings,
            "config_name": name,
        }

    # configuration getters using active config

    def get_display_name(self) -> str:
        """Get display name for active configuration"""
        return self._active_config.get('display_name', self._active_config_name)

    def get_evm_chain(self) -> str:
        """Get EVM chain name"""
        return self._active_config.get('evm_chain', 'unknown')

    def get_evm_rpc_urls(self) -> List[str]:
        """Get list of EVM RPC URLs in preference order"""
        urls = self._active_config.get('evm_rpc_urls')
        if isinstance(urls, list):
            urls = [u for u in urls if u]
            if urls:
                return urls
        url = self._active_config.get('evm_rpc_url')
        if isinstance(url, str) and url:
            return [url]
        raise ConfigError("No EVM RPC URL(s) configured")

    def get_distributor_contract(self) -> str:
        """Get the reward distributor contract address"""
        try:
            return self._active_config['distributor_contract']
        except KeyError:
            raise ConfigError("distributor_contract not configured")

    def get_event_contract(self) -> str:
        """Get the address emitting reward events (defaults to the distributor)"""
        return self._active_config.get('event_contract') or self.get_distributor_contract()

    def get_event_from_filter(self) -> Optional[str]:
        """Get the `from` address reward transfers must originate from (defaults to the distributor)"""
        if 'event_from_filter' in self._active_config:
            return self._active_config['event_from_filter'] or None
        return self.get_distributor_contract()

    def get_reward_token(self) -> str:
        """Get the reward token contract address"""
        try:
            return self._active_config['reward_token']
        except KeyError:
            raise ConfigError("reward_token not configured")

    def get_reward_event(self) -> Dict[str, str]:
        """Get the reward event signature and the names of its sender/recipient/amount arguments"""
        event = self._active_config.get('reward_event', {})
        return {
            'signature': event.get('signature', DEFAULT_REWARD_EVENT),
            'sender_arg': event.get('sender_arg', 'from'),
            'recipient_arg': event.get('recipient_arg', 'to'),
            'amount_arg': event.get('amount_arg', 'value'),
        }

    def get_fallback_token(self) -> Dict[str, Any]:
        """Get the token metadata used when symbol/decimals cannot be read on-chain"""
        fallback = self._active_config.get('fallback_token', {})
        return {
            'symbol': fallback.get('symbol', 'USDC'),
            'decimals': int(fallback.get('decimals', 6)),
        }

    def get_view_signature(self, view_name: str) -> Optional[str]:
        """Get a contract view signature by name (None disables that view)"""
        defaults = {
            'distribution_amount': 'getDistributionAmount(address)',
            'total_distributed': 'totalDistributed()',
            'holder_count': 'getNumberOfTokenHolders()',
        }
        views = self._active_config.get('views', {})
        if view_name in views:
            return views[view_name] or None
        return defaults.get(view_name)

    def get_telegram_bot_token(self) -> Optional[str]:
        """Get Telegram bot token"""
        return self._active_config.get('telegram', {}).get('bot_token') or os.getenv('TELEGRAM_TOKEN')

    def get_telegram_chat_id(self) -> Optional[str]:
        """Get Telegram destination chat id"""
        return self._active_config.get('telegram', {}).get('chat_id') or os.getenv('CHAT_ID')

    def get_media_ref(self, kind: str) -> Optional[str]:
        """Get the animation URL for a message kind ('reward' or 'stats')"""
        return self._active_config.get('media', {}).get(kind) or None

    def get_explorer_tx_url(self) -> str:
        """Get the block explorer transaction URL prefix"""
        return self._active_config.get('explorer_tx_url', 'https://basescan.org/tx/')

    def get_data_dir(self) -> str:
        """Get data directory for active configuration"""
        return self._active_config.get('data_dir', f"data/{self._active_config_name}")

    def get_state_file(self) -> str:
        """Get the pipeline state file path"""
        return f"{self.get_data_dir()}/rewards_watcher_state.json"

    def get_min_amount(self) -> Decimal:
        """Get the minimum notable reward amount (display units)"""
        return Decimal(str(self._active_config.get('thresholds', {}).get('min_amount', '0.000001')))

    def get_max_amount(self) -> Decimal:
        """Get the sanity ceiling for a single reward (display units)"""
        return Decimal(str(self._active_config.get('thresholds', {}).get('max_amount', '1000000')))

    # defaults and monitoring config

    def get_defaults(self) -> Dict[str, Any]:
        """Get default values"""
        return self._config_data.get("defaults", {})

    def get_monitoring_config(self) -> Dict[str, Any]:
        """Get monitoring configuration"""
        return self._config_data.get("monitoring", {})

    def _env_int(self, env_name: str, fallback: int) -> int:
        value = os.getenv(env_name)
        if value is None or value == '':
            return int(fallback)
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"{env_name} must be an integer, got {value!r}")

    def get_reward_check_interval(self) -> int:
        """Get reward scan interval in seconds"""
        return self._env_int('REWARD_CHECK_INTERVAL', self.get_defaults().get('reward_check_interval', 60))

    def get_stats_interval(self) -> int:
        """Get stats publication interval in seconds"""
        return self._env_int('STATS_INTERVAL', self.get_defaults().get('stats_interval', 900))

    def get_lookback_blocks(self) -> int:
        """Get maximum blocks behind the head scanned in one cycle"""
        return self._env_int('LOOKBACK_BLOCKS', self.get_defaults().get('lookback_blocks', 1000))

    def get_notify_delay(self) -> float:
        """Get pause in seconds between consecutive notifications"""
        return float(self.get_defaults().get('notify_delay', 1.0))

    def get_dedup_capacity(self) -> int:
        """Get dedup ledger capacity"""
        return int(self.get_defaults().get('dedup_capacity', 1000))

    def get_event_key_mode(self) -> str:
        """Get event key mode: 'tx' or 'tx_log'"""
        mode = self.get_defaults().get('event_key_mode', 'tx_log')
        if mode not in EVENT_KEY_MODES:
            raise ConfigError(f"event_key_mode must be one of {EVENT_KEY_MODES}, got {mode!r}")
        return mode

    def get_health_port(self) -> int:
        """Get liveness endpoint port (PORT env var wins)"""
        return self._env_int('PORT', self.get_defaults().get('health_port', 3000))

    def get_display_timezone(self) -> str:
        """Get timezone used for timestamps in messages"""
        return self.get_defaults().get('display_timezone', 'US/Eastern')

    def get_block_batch_size(self) -> int:
        """Get maximum block range per eth_getLogs call"""
        return int(self.get_monitoring_config().get('block_batch_size', 2000))

    def get_rpc_timeout(self) -> int:
        """Get HTTP request timeout for RPC calls in seconds"""
        return int(self.get_monitoring_config().get('rpc_timeout', 15))

    def get_rpc_preference_reset_minutes(self) -> int:
        """Get preference reset interval (minutes) for RPC selection (default 60)"""
        try:
            return int(self.get_monitoring_config().get('rpc_preference_reset_minutes', 60))
        except (TypeError, ValueError):
            return 60


# Global configuration manager instance
_config_manager_instance: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """
    Get the global configuration manager instance (singleton pattern)
    """
    global _config_manager_instance

    if _config_manager_instance is None:
        _config_manager_instance = ConfigManager()

    return _config_manager_instance


def reset_config_manager_instance(config_name_override: Optional[str] = None,
                                  config_file: Optional[str] = None) -> ConfigManager:
    """
    Reset the global configuration manager instance with optional profile override
    """
    global _config_manager_instance

    _config_manager_instance = ConfigManager(config_file=config_file, config_name_override=config_name_override)
    return _config_manager_instance
