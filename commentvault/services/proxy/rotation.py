"""Proxy rotation for outbound platform requests.

A ``ProxyRotationContext`` owns the provider list, the strategy, the
round-robin cursor, the sticky domain map and the per-provider consecutive-use
counters. It is constructed explicitly and passed to the clients that need it;
reconfiguring replaces the whole context.
"""

import copy
import json
import logging
import random
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

import httpx

from commentvault.config import Settings

logger = logging.getLogger(__name__)


class ProxyProviderType(str, Enum):
    """Proxy provider types supported by the system."""

    DEFAULT = "default"
    BRIGHT_DATA = "brightdata"
    WEBSHARE = "webshare"
    OXYLABS = "oxylabs"
    SMARTPROXY = "smartproxy"
    NETNUT = "netnut"
    PROXY_RACK = "proxyrack"
    CUSTOM = "custom"


class ProxyRotationStrategy(str, Enum):
    """How a provider is chosen for each outbound call."""

    ROUND_ROBIN = "round_robin"
    RANDOM = "random"
    WEIGHTED = "weighted"
    STICKY_SESSION = "sticky"


@dataclass
class ProxyProvider:
    """One egress identity."""

    url: str
    username: str | None = None
    password: str | None = None
    type: ProxyProviderType = ProxyProviderType.DEFAULT
    weight: float = 1.0
    tags: list[str] = field(default_factory=list)
    max_consecutive_uses: int = 0  # 0 = unlimited
    consecutive_uses: int = 0
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProxyProvider":
        """Build a provider from a JSON config entry (camelCase or snake_case keys)."""
        return cls(
            url=data["url"],
            username=data.get("username"),
            password=data.get("password"),
            type=ProxyProviderType(data.get("type") or ProxyProviderType.DEFAULT.value),
            weight=float(data.get("weight") or 1),
            tags=list(data.get("tags") or []),
            max_consecutive_uses=int(
                data.get("maxConsecutiveUses") or data.get("max_consecutive_uses") or 0
            ),
            options=dict(data.get("options") or {}),
        )

    def as_httpx_proxy(self) -> httpx.Proxy:
        """Transport-level proxy definition, with basic auth when configured."""
        if self.username and self.password:
            return httpx.Proxy(self.url, auth=(self.username, self.password))
        return httpx.Proxy(self.url)


class ProxyRotationContext:
    """Selects a provider per outbound call according to a strategy."""

    def __init__(
        self,
        providers: list[ProxyProvider] | None = None,
        strategy: ProxyRotationStrategy = ProxyRotationStrategy.ROUND_ROBIN,
        enabled: bool | None = None,
        rng: random.Random | None = None,
    ) -> None:
        # Copies, so reconfiguring from the same list always starts from zero
        self._providers = [replace(p, consecutive_uses=0) for p in providers or []]
        self.strategy = strategy
        self._enabled = bool(self._providers) if enabled is None else enabled
        self._current_index = 0
        self._sticky_sessions: dict[str, int] = {}
        self._rng = rng or random.Random()

    @property
    def enabled(self) -> bool:
        return self._enabled and bool(self._providers)

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable proxy usage (no-op without providers)."""
        self._enabled = enabled and bool(self._providers)

    def providers(
        self,
        type: ProxyProviderType | None = None,
        tags: list[str] | None = None,
    ) -> list[ProxyProvider]:
        """Configured providers matching a type and any of the given tags."""
        if not self.enabled:
            return []

        matches = []
        for provider in self._providers:
            if type and provider.type != type:
                continue
            if tags and not any(tag in tags for tag in provider.tags):
                continue
            matches.append(provider)
        return matches

    def select(self, domain: str | None = None) -> ProxyProvider | None:
        """Pick the provider for the next outbound call.

        Args:
            domain: Request-origin key used by the sticky-session strategy

        Returns:
            The selected provider, or None when proxies are disabled/unconfigured
        """
        if not self.enabled:
            return None

        count = len(self._providers)

        if self.strategy == ProxyRotationStrategy.RANDOM:
            index = self._rng.randrange(count)
        elif self.strategy == ProxyRotationStrategy.WEIGHTED:
            index = self._weighted_index()
        elif self.strategy == ProxyRotationStrategy.STICKY_SESSION and domain:
            if domain not in self._sticky_sessions:
                self._sticky_sessions[domain] = self._rng.randrange(count)
            index = self._sticky_sessions[domain]
        else:
            # Round-robin, and sticky sessions without a domain
            index = self._current_index
            self._current_index = (self._current_index + 1) % count

        provider = self._providers[index]
        provider.consecutive_uses += 1

        if provider.max_consecutive_uses and provider.consecutive_uses >= provider.max_consecutive_uses:
            provider.consecutive_uses = 0
            if self.strategy == ProxyRotationStrategy.ROUND_ROBIN:
                self._current_index = (index + 1) % count

        return provider

    def _weighted_index(self) -> int:
        total = sum(p.weight for p in self._providers)
        draw = self._rng.random() * total
        cumulative = 0.0
        for i, provider in enumerate(self._providers):
            cumulative += provider.weight
            if draw < cumulative:
                return i
        return len(self._providers) - 1

    def apply_proxy(
        self, options: dict[str, Any] | None = None, domain: str | None = None
    ) -> dict[str, Any]:
        """Return httpx client options routed through the next provider.

        The given options are never modified; without a provider they are
        returned as an unchanged copy.
        """
        new_options = copy.deepcopy(options or {})
        provider = self.select(domain)
        if provider is None:
            return new_options
        new_options["proxy"] = provider.as_httpx_proxy()
        return new_options


def load_proxy_rotation(settings: Settings) -> ProxyRotationContext:
    """Build a rotation context from settings.

    ``proxy_config`` (JSON with ``providers`` and ``rotationStrategy``) wins
    over the legacy single ``proxy_url``. An unparsable document is logged and
    leaves proxies disabled.
    """
    if settings.proxy_config:
        try:
            config = json.loads(settings.proxy_config)
            providers = [ProxyProvider.from_dict(p) for p in config.get("providers") or []]
            strategy = ProxyRotationStrategy(
                config.get("rotationStrategy") or ProxyRotationStrategy.ROUND_ROBIN.value
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Error parsing proxy config: {e}")
            return ProxyRotationContext()

        logger.info(f"Configured {len(providers)} proxies with {strategy.value} rotation")
        return ProxyRotationContext(providers, strategy)

    if settings.proxy_url:
        logger.info("Configured single proxy from legacy settings")
        return ProxyRotationContext(
            [
                ProxyProvider(
                    url=settings.proxy_url,
                    username=settings.proxy_username or None,
                    password=settings.proxy_password or None,
                )
            ]
        )

    return ProxyRotationContext()


_rotation: ProxyRotationContext = ProxyRotationContext()


def get_proxy_rotation() -> ProxyRotationContext:
    """Get the active rotation context."""
    return _rotation


def configure_proxy_rotation(
    providers: list[ProxyProvider],
    strategy: ProxyRotationStrategy = ProxyRotationStrategy.ROUND_ROBIN,
) -> ProxyRotationContext:
    """Replace the active rotation context wholesale (counters start at zero)."""
    global _rotation
    _rotation = ProxyRotationContext(providers, strategy)
    return _rotation


def install_proxy_rotation(context: ProxyRotationContext) -> None:
    """Install an already built context, e.g. from ``load_proxy_rotation``."""
    global _rotation
    _rotation = context
