"""
Tests for origin whitelisting.
"""

import pytest

from service_gateway.app.domain.origin import is_allowed
from service_gateway.app.registry import AppConfig


@pytest.fixture
def app_config():
    return AppConfig(
        name="myblog",
        origins=("https://myblog.com", "http://localhost:3000"),
        apis={},
    )


class TestPrefixMatching:

    @pytest.mark.parametrize("origin", [
        "https://myblog.com",
        "http://localhost:3000",
        "http://localhost:3000/page",
    ])
    def test_allowed_origins(self, app_config, origin):
        assert is_allowed(app_config, origin, None) is True

    def test_referer_alone_is_enough(self, app_config):
        assert is_allowed(app_config, None, "https://myblog.com/posts/1") is True

    def test_either_header_suffices(self, app_config):
        assert is_allowed(app_config, "https://evil.com", "https://myblog.com/") is True

    @pytest.mark.parametrize("origin", [
        "https://evil.com",
        "http://myblog.com",
        "http://localhost:5500",
    ])
    def test_rejected_origins(self, app_config, origin):
        assert is_allowed(app_config, origin, None) is False

    def test_no_headers_rejected(self, app_config):
        assert is_allowed(app_config, None, None) is False
        assert is_allowed(app_config, "", "") is False

    def test_prefix_admits_lookalike_host(self, app_config):
        """Prefix matching admits hosts that merely start with a whitelisted origin."""
        assert is_allowed(app_config, "https://myblog.com.evil.com", None) is True

    def test_is_pure(self, app_config):
        first = is_allowed(app_config, "https://myblog.com", None)
        second = is_allowed(app_config, "https://myblog.com", None)
        assert first == second is True
        assert app_config.origins == ("https://myblog.com", "http://localhost:3000")


class TestStrictMatching:

    def test_exact_origin(self, app_config):
        assert is_allowed(app_config, "https://myblog.com", None, strict=True) is True

    def test_referer_path_ignored(self, app_config):
        assert is_allowed(app_config, None, "http://localhost:3000/page?x=1", strict=True) is True

    def test_lookalike_host_rejected(self, app_config):
        assert is_allowed(app_config, "https://myblog.com.evil.com", None, strict=True) is False

    def test_port_must_match(self, app_config):
        assert is_allowed(app_config, "http://localhost:3001", None, strict=True) is False

    def test_case_insensitive_host(self, app_config):
        assert is_allowed(app_config, "https://MyBlog.com", None, strict=True) is True

    def test_garbage_rejected(self, app_config):
        assert is_allowed(app_config, "null", None, strict=True) is False
