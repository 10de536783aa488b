"""
Strategy factory for creating terminal provider strategies.

This module provides configuration-based strategy selection, allowing the
SDK to drive whichever terminal provider the kiosk is configured for.
"""

from typing import Any

import structlog

from terminal_payments.adapters import MessagingAdapter
from terminal_payments.clients import PaymentApiClient
from terminal_payments.config import settings
from terminal_payments.models import TerminalConfig
from terminal_payments.strategies.base import PaymentStrategy
from terminal_payments.strategies.completion import CompletionTimings
from terminal_payments.strategies.mock_strategy import MockStrategy
from terminal_payments.strategies.nets_strategy import NetsStrategy
from terminal_payments.strategies.viva_strategy import VivaStrategy

logger = structlog.get_logger(__name__)


class StrategyFactory:
    """
    Factory for creating provider strategy instances.

    Terminal-backed strategies are constructed with the shared HTTP client,
    the notification subscriber, the terminal config and the completion
    timings. The mock strategy needs none of those.
    """

    # Registry of available strategies
    _STRATEGIES: dict[str, type[PaymentStrategy]] = {
        "viva": VivaStrategy,
        "nets": NetsStrategy,
        "mock": MockStrategy,
    }

    @classmethod
    def create_strategy(
        cls,
        provider_name: str,
        api: PaymentApiClient | None,
        messaging: MessagingAdapter | None,
        config: TerminalConfig,
        timings: CompletionTimings | None = None,
        strategy_config: dict[str, Any] | None = None,
    ) -> PaymentStrategy:
        """
        Create a strategy instance by provider name.

        Args:
            provider_name: Name of the provider (e.g., "viva", "nets")
            api: Payment backend client (unused by the mock strategy)
            messaging: Notification subscriber (unused by the mock strategy)
            config: Terminal identification
            timings: Completion race timings; settings are used when omitted
            strategy_config: Extra keyword configuration for the strategy

        Returns:
            PaymentStrategy instance

        Raises:
            ValueError: If provider_name is not registered or a terminal
                strategy is requested without api/messaging
        """
        provider_name_lower = provider_name.lower()

        if provider_name_lower not in cls._STRATEGIES:
            available = ", ".join(cls._STRATEGIES.keys())
            raise ValueError(
                f"Unknown provider: {provider_name}. "
                f"Available providers: {available}"
            )

        strategy_class = cls._STRATEGIES[provider_name_lower]

        logger.info(
            "strategy_created",
            provider=provider_name_lower,
            strategy_class=strategy_class.__name__,
        )

        if strategy_class is MockStrategy:
            return MockStrategy(config=strategy_config)

        if api is None or messaging is None:
            raise ValueError(f"Provider {provider_name_lower} requires an API client and messaging adapter")

        return strategy_class(
            api=api,
            messaging=messaging,
            config=config,
            timings=timings,
            **(strategy_config or {}),
        )

    @classmethod
    def register_strategy(
        cls,
        name: str,
        strategy_class: type[PaymentStrategy],
    ) -> None:
        """
        Register a new strategy type.

        The class must accept ``api, messaging, config, timings`` keyword
        arguments like the built-in terminal strategies.

        Example:
            StrategyFactory.register_strategy("adyen", AdyenStrategy)
        """
        if not issubclass(strategy_class, PaymentStrategy):
            raise TypeError(
                f"{strategy_class.__name__} must inherit from PaymentStrategy"
            )

        cls._STRATEGIES[name.lower()] = strategy_class
        logger.info(
            "strategy_registered",
            provider=name.lower(),
            strategy_class=strategy_class.__name__,
        )

    @classmethod
    def list_strategies(cls) -> list[str]:
        """Get sorted list of available provider names."""
        return sorted(cls._STRATEGIES.keys())


def get_strategy(
    config: TerminalConfig,
    api: PaymentApiClient | None = None,
    messaging: MessagingAdapter | None = None,
    timings: CompletionTimings | None = None,
) -> PaymentStrategy:
    """
    Resolve the strategy for a terminal configuration.

    Falls back to ``settings.default_provider`` when the terminal has no
    provider configured.

    Examples:
        strategy = get_strategy(TerminalConfig(provider=PaymentProvider.NETS, kiosk_id="k1", store_id="351"), api, messaging)
    """
    provider_name = config.provider.value if config.provider is not None else settings.default_provider
    return StrategyFactory.create_strategy(provider_name, api, messaging, config, timings)
