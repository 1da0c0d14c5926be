#!/usr/bin/env python3
"""
Setup script for Rewards Watcher
"""

from setuptools import setup

setup(
    name="rewards-watcher",
    version="1.0.0",
    description="Reward distribution watcher with Telegram notifications",
    package_dir={"": "src"},
    py_modules=[
        "chain_reader",
        "config_manager",
        "cursor_tracker",
        "dedup_ledger",
        "event_validator",
        "health_server",
        "logger_utils",
        "messages",
        "models",
        "notifier",
        "pipeline_state",
        "reward_scanner",
        "rewards_watcher",
        "rpc_failover",
        "scheduler",
        "stats_publisher",
        "token_meta",
    ],
    install_requires=[
        "web3>=6.0.0,<7.0.0",
        "requests>=2.28.0",
        "eth-abi>=4.0.0,<5.0.0",
        "python-dotenv>=1.0.0",
        "pytz>=2023.3",
        "flask>=2.2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "rewards-watcher=rewards_watcher:main",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
