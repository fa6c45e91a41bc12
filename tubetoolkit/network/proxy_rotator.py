"""
Round-robin rotation across a pool of egress proxies with failure tracking.
"""

import logging
from collections import Counter
from collections.abc import Iterable
from pathlib import Path

log = logging.getLogger(__name__)


class ProxyRotator:
    """
    Hands out the current usable proxy and moves away from proxies reported as failed.

    The failed set is an advisory liveness hint supplied by callers; no health probing
    is performed. When every proxy is marked failed, the failed set is cleared so the
    pool is never permanently exhausted.
    """

    def __init__(self, proxies: Iterable[str] | None = None):
        self.proxies: list[str] = []
        self.current_index = 0
        self.failed_proxies: set[str] = set()
        self.failure_counts: Counter[str] = Counter()
        self.rotation_count = 0
        for proxy in proxies or ():
            self.add(proxy)

    @classmethod
    def from_file(cls, path: Path) -> "ProxyRotator":
        """
        Builds a rotator from a newline separated proxy list.
        Blank lines and lines starting with '#' are ignored.
        """
        lines = path.read_text(encoding="utf-8").splitlines()
        return cls(
            line.strip()
            for line in lines
            if line.strip() and not line.strip().startswith("#")
        )

    def __len__(self) -> int:
        return len(self.proxies)

    def current(self) -> str | None:
        """
        Returns the proxy at the rotation pointer, skipping failed ones.

        Returns None only when the pool is empty, meaning "connect directly".
        """
        if not self.proxies:
            return None

        for _ in range(len(self.proxies)):
            proxy = self.proxies[self.current_index]
            if proxy not in self.failed_proxies:
                return proxy
            self.advance()

        log.info("[yellow]🔄 All proxies failed, resetting failed list...[/yellow]")
        self.failed_proxies.clear()
        return self.proxies[self.current_index]

    def advance(self) -> None:
        """Moves the pointer to the next proxy, wrapping around."""
        if not self.proxies:
            return
        self.current_index = (self.current_index + 1) % len(self.proxies)
        self.rotation_count += 1
        log.debug(
            f"Rotated to proxy {self.current_index + 1}/{len(self.proxies)}"
        )

    def mark_failed(self, proxy: str) -> None:
        """Records a failure and always rotates away, even if no new proxy is requested."""
        if proxy not in self.failed_proxies:
            log.warning(f"[yellow]❌ Marked proxy as failed:[/] {proxy}")
        self.failed_proxies.add(proxy)
        self.failure_counts[proxy] += 1
        self.advance()

    def add(self, proxy: str) -> bool:
        """Appends a proxy to the pool. Returns False if it was already present."""
        proxy = proxy.strip()
        if not proxy or proxy in self.proxies:
            return False
        self.proxies.append(proxy)
        log.debug(f"Added proxy: {proxy}")
        return True

    def stats(self) -> dict:
        return {
            "total_proxies": len(self.proxies),
            "failed_proxies": len(self.failed_proxies),
            "proxy_failures": dict(self.failure_counts),
            "rotation_count": self.rotation_count,
        }
