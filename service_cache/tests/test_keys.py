"""
Unit tests for cache key derivation and pattern validation.
"""

import subprocess

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_cache.app.caching.keys import derive_key, normalize_query, validate_pattern
from shared.errors import InvalidPattern


class TestDeriveKey:
    """Test cases for derive_key."""

    def test_get_key_has_no_method_qualifier(self):
        """Plain GETs map to cache:<path>?<query>."""
        assert derive_key("GET", "/users", "page=2") == "cache:/users?page=2"

    def test_key_without_query(self):
        assert derive_key("GET", "/users/42", "") == "cache:/users/42"

    def test_leading_question_mark_is_ignored(self):
        assert derive_key("GET", "/users", "?page=2") == derive_key("GET", "/users", "page=2")

    def test_method_is_case_insensitive(self):
        assert derive_key("get", "/users") == derive_key("GET", "/users")

    def test_other_methods_are_qualified(self):
        """Reads under other methods never share a key with GET."""
        key = derive_key("HEAD", "/users")
        assert key == "cache:HEAD:/users"
        assert key != derive_key("GET", "/users")

    def test_namespace_and_prefix(self):
        key = derive_key("GET", "/api/notifications", "type=sms", namespace="notifications", prefix="resp:")
        assert key == "resp:notifications:/api/notifications?type=sms"

    def test_different_targets_give_different_keys(self):
        keys = {
            derive_key("GET", "/a"),
            derive_key("GET", "/a", "x=1"),
            derive_key("GET", "/a", "x=2"),
            derive_key("GET", "/a/1"),
            derive_key("GET", "/b"),
        }
        assert len(keys) == 5

    def test_repeated_calls_are_identical(self):
        first = derive_key("GET", "/reports", "from=2024-01-01&to=2024-02-01")
        for _ in range(10):
            assert derive_key("GET", "/reports", "from=2024-01-01&to=2024-02-01") == first

    def test_stable_across_processes(self):
        """No process-local state (e.g. hash randomization) leaks into keys."""
        code = (
            "from service_cache.app.caching.keys import derive_key;"
            "print(derive_key('GET', '/users', 'b=2&a=1', namespace='users'))"
        )
        root = os.path.join(os.path.dirname(__file__), '..', '..')
        outputs = set()
        for seed in ("1", "2"):
            env = dict(os.environ, PYTHONHASHSEED=seed, PYTHONPATH=root)
            result = subprocess.run([sys.executable, "-c", code], capture_output=True, text=True, env=env, check=True)
            outputs.add(result.stdout.strip())
        assert outputs == {derive_key("GET", "/users", "b=2&a=1", namespace="users")}

    def test_query_order_is_preserved_by_default(self):
        assert derive_key("GET", "/a", "b=2&a=1") != derive_key("GET", "/a", "a=1&b=2")

    def test_query_normalization(self):
        assert derive_key("GET", "/a", "b=2&a=1", normalize=True) == derive_key("GET", "/a", "a=1&b=2", normalize=True)

    def test_normalize_query_keeps_blank_values_and_repeats(self):
        assert normalize_query("b=&a=2&a=1") == "a=1&a=2&b="
        assert normalize_query("") == ""


class TestValidatePattern:
    """Test cases for validate_pattern."""

    @pytest.mark.parametrize("pattern", [
        "cache:/users/*",
        "cache:/users/?",
        "cache:[ab]/*",
        "cache:[^a]*",
        "cache:\\*literal",
        "cache:]odd",
    ])
    def test_valid_patterns(self, pattern):
        assert validate_pattern(pattern) == pattern

    @pytest.mark.parametrize("pattern", ["", "cache:[ab", "cache:/users/\\"])
    def test_invalid_patterns(self, pattern):
        with pytest.raises(InvalidPattern) as exc_info:
            validate_pattern(pattern)
        assert exc_info.value.code == "INVALID_PATTERN"
        assert exc_info.value.status_code == 400

    def test_non_string_pattern(self):
        with pytest.raises(InvalidPattern):
            validate_pattern(None)
