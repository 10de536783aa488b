"""
Terminal provider strategies.

This module contains all provider implementations:
- base.PaymentStrategy: Abstract interface that all strategies must implement
- viva_strategy.VivaStrategy: Viva Wallet cloud terminals
- nets_strategy.NetsStrategy: Nets Connect@Cloud terminals
- mock_strategy.MockStrategy: Simulated terminal for demos and tests
- completion: The notification/poll/abort race shared by terminal strategies
- factory: Configuration-based strategy selection
"""

from terminal_payments.strategies.base import PaymentStrategy, StateChangeCallback
from terminal_payments.strategies.completion import CompletionTimings, await_completion
from terminal_payments.strategies.factory import StrategyFactory, get_strategy
from terminal_payments.strategies.mock_strategy import MockStrategy
from terminal_payments.strategies.nets_strategy import NetsStrategy
from terminal_payments.strategies.viva_strategy import VivaStrategy

__all__ = [
    "CompletionTimings",
    "MockStrategy",
    "NetsStrategy",
    "PaymentStrategy",
    "StateChangeCallback",
    "StrategyFactory",
    "VivaStrategy",
    "await_completion",
    "get_strategy",
]
