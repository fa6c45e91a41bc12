from tubetoolkit.network.proxy_rotator import ProxyRotator

PROXIES = ["http://10.0.0.1:8080", "http://10.0.0.2:8080", "socks5://10.0.0.3:1080"]


def test_empty_pool_means_direct_connection():
    rotator = ProxyRotator()
    assert rotator.current() is None
    rotator.advance()
    assert rotator.rotation_count == 0


def test_mark_failed_moves_to_next_proxy():
    rotator = ProxyRotator(PROXIES)
    assert rotator.current() == PROXIES[0]
    rotator.mark_failed(PROXIES[0])
    assert rotator.current() == PROXIES[1]
    assert rotator.failure_counts[PROXIES[0]] == 1


def test_current_skips_failed_entries():
    rotator = ProxyRotator(PROXIES)
    rotator.failed_proxies.add(PROXIES[1])
    rotator.advance()
    assert rotator.current() == PROXIES[2]


def test_all_failed_resets_pool():
    rotator = ProxyRotator(PROXIES)
    for proxy in PROXIES:
        rotator.mark_failed(proxy)
    assert rotator.failed_proxies == set(PROXIES)

    assert rotator.current() is not None
    assert rotator.failed_proxies == set()


def test_advance_wraps_around():
    rotator = ProxyRotator(PROXIES[:2])
    rotator.advance()
    rotator.advance()
    assert rotator.current() == PROXIES[0]
    assert rotator.rotation_count == 2


def test_add_ignores_duplicates_and_keeps_pointer():
    rotator = ProxyRotator(PROXIES[:1])
    rotator.mark_failed(PROXIES[0])
    assert rotator.add(PROXIES[1]) is True
    assert rotator.add(PROXIES[1]) is False
    assert rotator.add("  ") is False
    assert rotator.failed_proxies == {PROXIES[0]}
    assert rotator.current() == PROXIES[1]


def test_from_file_skips_comments_and_blanks(tmp_path):
    proxy_file = tmp_path / "proxies.txt"
    proxy_file.write_text(
        "# office proxies\nhttp://10.0.0.1:8080\n\n  socks5://10.0.0.3:1080  \n",
        encoding="utf-8",
    )
    rotator = ProxyRotator.from_file(proxy_file)
    assert rotator.proxies == ["http://10.0.0.1:8080", "socks5://10.0.0.3:1080"]
    assert len(rotator) == 2


def test_stats():
    rotator = ProxyRotator(PROXIES)
    rotator.mark_failed(PROXIES[0])
    rotator.mark_failed(PROXIES[0])
    assert rotator.stats() == {
        "total_proxies": 3,
        "failed_proxies": 1,
        "proxy_failures": {PROXIES[0]: 2},
        "rotation_count": 2,
    }
