"""Tests for CacheOptions resolution."""

from __future__ import annotations

import pytest
from starlette.datastructures import MutableHeaders

from cachegate.cache.backend import InMemoryCacheBackend
from cachegate.cache.capture import CapturedResponse
from cachegate.cache.errors import CacheConfigError
from cachegate.cache.keys import default_get_cache_key
from cachegate.cache.options import CacheOptions, default_is_error


def response(status: int) -> CapturedResponse:
    return CapturedResponse(status_code=status, headers=MutableHeaders())


class TestDefaultIsError:
    @pytest.mark.parametrize("status, expected", [(200, False), (304, False), (400, True), (500, True)])
    def test_status_threshold(self, status, expected):
        assert default_is_error(None, response(status)) is expected


class TestResolve:
    def test_defaults_come_from_settings(self, fake_settings):
        resolved = CacheOptions().resolve(fake_settings)
        assert resolved.default_expiry_seconds == fake_settings.default_expiry_seconds
        assert resolved.headers_key_suffix == ".headers"
        assert resolved.enabled is True
        assert resolved.is_error is default_is_error
        assert resolved.get_cache_key is default_get_cache_key
        assert isinstance(resolved.client, InMemoryCacheBackend)

    def test_explicit_values_win(self, fake_settings, backend):
        resolved = CacheOptions(
            client=backend,
            default_expiry_seconds=10,
            headers_key_suffix=":h",
            enabled=False,
        ).resolve(fake_settings)
        assert resolved.client is backend
        assert resolved.default_expiry_seconds == 10
        assert resolved.headers_key_suffix == ":h"
        assert resolved.enabled is False

    def test_client_options_build_backend(self, fake_settings):
        from cachegate.cache.backend import RedisCacheBackend

        resolved = CacheOptions(client_options={"redis_url": "redis://localhost:6379/3"}).resolve(
            fake_settings
        )
        assert isinstance(resolved.client, RedisCacheBackend)

    def test_non_positive_default_expiry_rejected(self, fake_settings):
        with pytest.raises(CacheConfigError):
            CacheOptions(default_expiry_seconds=0).resolve(fake_settings)

    def test_empty_suffix_rejected(self, fake_settings):
        with pytest.raises(CacheConfigError):
            CacheOptions(headers_key_suffix="").resolve(fake_settings)

    def test_resolved_options_are_frozen(self, fake_settings):
        resolved = CacheOptions().resolve(fake_settings)
        with pytest.raises(AttributeError):
            resolved.enabled = False
