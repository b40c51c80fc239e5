"""Proxy rotation module."""

from commentvault.services.proxy.rotation import (
    ProxyProvider,
    ProxyProviderType,
    ProxyRotationContext,
    ProxyRotationStrategy,
    configure_proxy_rotation,
    get_proxy_rotation,
    install_proxy_rotation,
    load_proxy_rotation,
)

__all__ = [
    "ProxyProvider",
    "ProxyProviderType",
    "ProxyRotationContext",
    "ProxyRotationStrategy",
    "configure_proxy_rotation",
    "get_proxy_rotation",
    "install_proxy_rotation",
    "load_proxy_rotation",
]
