"""Tests for configuration: server registry and resolver config files."""

from __future__ import annotations

import pytest

from depaudit.core.config import (
    ServerDetails,
    get_project_conf_file_path,
    get_server_details,
    load_servers,
    read_resolution_only_configuration,
)
from depaudit.exceptions import MissingResolverError, ResolverConfigError


class TestServerDetails:
    def test_urls_derived_from_platform_url(self):
        details = ServerDetails(url="https://acme.example")
        assert details.get_xray_url() == "https://acme.example/xray/"
        assert details.get_artifactory_url() == "https://acme.example/artifactory/"

    def test_explicit_urls_win(self):
        details = ServerDetails(
            url="https://acme.example/", xray_url="https://xray.example/api"
        )
        assert details.get_xray_url() == "https://xray.example/api/"

    def test_auth(self):
        assert ServerDetails(access_token="tok").auth_headers() == {"Authorization": "Bearer tok"}
        assert ServerDetails(user="u", password="p").basic_auth() == ("u", "p")
        assert ServerDetails().auth_headers() == {}


class TestGetServerDetails:
    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("DEPAUDIT_URL", "https://env.example")
        monkeypatch.setenv("DEPAUDIT_ACCESS_TOKEN", "env-token")
        details = get_server_details()
        assert details.url == "https://env.example"
        assert details.access_token == "env-token"

    def test_default_and_named_servers(self, depaudit_home):
        (depaudit_home / "servers.yaml").write_text(
            "servers:\n"
            "  - serverId: a\n    url: https://a.example\n"
            "  - serverId: b\n    url: https://b.example\n    isDefault: true\n"
        )
        assert get_server_details().server_id == "b"
        assert get_server_details("a").url == "https://a.example"

    def test_server_id_from_env(self, depaudit_home, monkeypatch):
        (depaudit_home / "servers.yaml").write_text(
            "servers:\n  - serverId: a\n  - serverId: b\n"
        )
        monkeypatch.setenv("DEPAUDIT_SERVER_ID", "a")
        assert get_server_details().server_id == "a"

    def test_unknown_server_id(self):
        with pytest.raises(ResolverConfigError, match="does not exist"):
            get_server_details("ghost")

    def test_invalid_registry(self, depaudit_home):
        (depaudit_home / "servers.yaml").write_text("servers: [unclosed\n")
        with pytest.raises(ResolverConfigError):
            load_servers()


class TestProjectConfig:
    def test_found_in_parent_directory(self, tmp_path):
        config = tmp_path / ".depaudit" / "projects" / "maven.yaml"
        config.parent.mkdir(parents=True)
        config.write_text("resolver:\n  repo: maven-remote\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert get_project_conf_file_path("maven", nested) == config.resolve()

    def test_not_found(self, tmp_path):
        assert get_project_conf_file_path("maven", tmp_path) is None

    def test_read_configuration(self, tmp_path):
        path = tmp_path / "npm.yaml"
        path.write_text("version: 1\ntype: npm\nresolver:\n  repo: npm-remote\n  serverId: a\n")
        config = read_resolution_only_configuration(path)
        assert config.target_repo() == "npm-remote"
        assert config.resolver.server_id == "a"

    def test_missing_resolver(self, tmp_path):
        path = tmp_path / "npm.yaml"
        path.write_text("version: 1\ntype: npm\nresolver:\n  serverId: a\n")
        with pytest.raises(MissingResolverError):
            read_resolution_only_configuration(path)

    @pytest.mark.parametrize("content", ["- just\n- a list\n", "resolver: [unclosed\n"])
    def test_invalid_file(self, tmp_path, content):
        path = tmp_path / "npm.yaml"
        path.write_text(content)
        with pytest.raises(ResolverConfigError) as exc_info:
            read_resolution_only_configuration(path)
        assert not isinstance(exc_info.value, MissingResolverError)
