"""Tests for the in-memory rate limiter."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi import HTTPException

from app.middleware.rate_limit import _memory_store, check_rate_limit, get_real_ip


def _request(forwarded=None, host="203.0.113.5"):
    headers = {"x-forwarded-for": forwarded} if forwarded else {}
    return SimpleNamespace(headers=headers, client=SimpleNamespace(host=host))


class TestRealIp:
    def test_client_host_without_proxy(self):
        assert get_real_ip(_request()) == "203.0.113.5"

    def test_skips_private_hops(self):
        assert get_real_ip(_request("10.0.0.3, 198.51.100.8, 192.168.1.1")) == "198.51.100.8"

    def test_all_private_falls_back_to_first(self):
        assert get_real_ip(_request("10.0.0.3, 192.168.1.1")) == "10.0.0.3"

    def test_no_client(self):
        assert get_real_ip(SimpleNamespace(headers={}, client=None)) == "unknown"


class TestSlidingWindow:
    def test_blocks_after_limit(self):
        for remaining in (2, 1, 0):
            assert check_rate_limit("ip:test", 3) == remaining

        with pytest.raises(HTTPException) as exc_info:
            check_rate_limit("ip:test", 3)
        assert exc_info.value.status_code == 429
        assert exc_info.value.headers["Retry-After"] == "60"

    def test_keys_are_independent(self):
        check_rate_limit("ip:a", 1)
        assert check_rate_limit("ip:b", 1) == 0


class TestMemoryCleanup:
    def _at(self, moment):
        return patch("app.middleware.rate_limit.time.time", return_value=moment)

    def test_expired_hits_reset_the_window(self):
        with self._at(1000.0):
            check_rate_limit("ip:a", 1)
        with self._at(1061.0):
            assert check_rate_limit("ip:a", 1) == 0
        assert _memory_store["ip:a"] == [1061.0]

    def test_idle_keys_are_swept(self):
        with patch("app.middleware.rate_limit._SWEEP_THRESHOLD", 2):
            with self._at(1000.0):
                for ip in ("a", "b", "c"):
                    check_rate_limit(f"ip:{ip}", 5)
            with self._at(1100.0):
                check_rate_limit("ip:d", 5)

        assert list(_memory_store) == ["ip:d"]

    def test_blocked_key_keeps_its_hits(self):
        with self._at(1000.0):
            check_rate_limit("ip:a", 1)
            with pytest.raises(HTTPException):
                check_rate_limit("ip:a", 1)
        assert _memory_store["ip:a"] == [1000.0]
