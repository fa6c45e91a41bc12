"""
Network Egress Layer.

This package manages the pool of proxies that download attempts are routed through.
"""

from .proxy_rotator import ProxyRotator

__all__ = ["ProxyRotator"]
