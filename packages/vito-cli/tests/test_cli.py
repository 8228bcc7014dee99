"""Tests for the vito CLI."""
from __future__ import annotations

import json
from importlib.metadata import version
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner

from vito_cli.client import ApiError
from vito_cli.config import ConfigurationMissing, Credentials, resolve
from vito_cli.main import cli


@pytest.fixture
def runner():
    # click < 8.2 mixes stderr into output unless asked not to
    try:
        return CliRunner(mix_stderr=False)
    except TypeError:
        return CliRunner()


@pytest.fixture
def mock_creds():
    return Credentials(url="http://localhost:8080", token="test-token-1234")


@pytest.fixture
def configured(mock_creds):
    with patch("vito_cli.main.require_credentials", return_value=mock_creds):
        yield mock_creds


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

def test_config_show_masks_token(runner, monkeypatch):
    monkeypatch.setenv("VITO_URL", "http://test:8080")
    monkeypatch.setenv("VITO_TOKEN", "secret-abcd")
    result = runner.invoke(cli, ["config"])
    assert result.exit_code == 0
    assert "http://test:8080" in result.output
    assert "***abcd" in result.output
    assert "secret" not in result.output
    assert "env" in result.output


def test_config_show_not_configured(runner):
    result = runner.invoke(cli, ["config"])
    assert result.exit_code == 0
    assert "Not configured" in result.output


def test_config_set_persists(runner, isolated_config):
    result = runner.invoke(cli, ["config", "set", "--url", "http://saved:8080", "--token", "saved-token"])
    assert result.exit_code == 0
    saved = isolated_config / "home" / "config.json"
    assert str(saved.resolve()) in result.output
    assert json.loads(saved.read_text(encoding="utf-8")) == {"url": "http://saved:8080", "token": "saved-token"}
    assert resolve() == Credentials(url="http://saved:8080", token="saved-token")


def test_config_set_prompts_for_token(runner, isolated_config):
    result = runner.invoke(cli, ["config", "set", "--url", "http://saved:8080"], input="prompted\n")
    assert result.exit_code == 0
    saved = json.loads((isolated_config / "home" / "config.json").read_text(encoding="utf-8"))
    assert saved["token"] == "prompted"


def test_config_set_warns_when_env_takes_priority(runner, monkeypatch):
    monkeypatch.setenv("VITO_URL", "http://env")
    monkeypatch.setenv("VITO_TOKEN", "env-token")
    result = runner.invoke(cli, ["config", "set", "--url", "http://saved", "--token", "t"])
    assert result.exit_code == 0
    assert "take priority" in result.output


def test_missing_configuration_exits(runner):
    with patch("vito_cli.main.require_credentials", side_effect=ConfigurationMissing()):
        result = runner.invoke(cli, ["projects", "list"])
    assert result.exit_code == 1
    assert "Not configured" in result.stderr


def test_missing_configuration_from_empty_env(runner, monkeypatch):
    monkeypatch.setenv("VITO_URL", "")
    monkeypatch.setenv("VITO_TOKEN", "")
    result = runner.invoke(cli, ["health"])
    assert result.exit_code == 1
    assert "VITO_TOKEN" in result.stderr


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

def test_health_ok(runner, configured):
    with patch("vito_cli.client.VitoClient.health", return_value={"status": "ok"}):
        result = runner.invoke(cli, ["health"])
    assert result.exit_code == 0
    assert json.loads(result.output) == {"status": "ok"}


def test_health_unreachable(runner, configured):
    error = httpx.ConnectError("connection refused")
    with patch("vito_cli.client.VitoClient.health", side_effect=error):
        result = runner.invoke(cli, ["health"])
    assert result.exit_code == 1
    assert "connection refused" in result.stderr


def test_malformed_url_reports_error(runner, configured):
    error = httpx.InvalidURL("Invalid non-printable ASCII character in URL")
    with patch("vito_cli.client.VitoClient.health", side_effect=error):
        result = runner.invoke(cli, ["health"])
    assert result.exit_code == 1
    assert "Error: Invalid non-printable ASCII character in URL" in result.stderr
    assert isinstance(result.exception, SystemExit)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------

def test_projects_list(runner, configured):
    payload = {"data": [{"id": 1, "name": "default"}]}
    with patch("vito_cli.client.VitoClient.list_projects", return_value=payload):
        result = runner.invoke(cli, ["projects", "list"])
    assert result.exit_code == 0
    assert json.loads(result.output) == payload


def test_projects_create(runner, configured):
    with patch("vito_cli.client.VitoClient.create_project", return_value={"id": 2}) as mock_create:
        result = runner.invoke(cli, ["projects", "create", "staging"])
    assert result.exit_code == 0
    mock_create.assert_called_once_with("staging")


def test_projects_create_validation_error(runner, configured):
    error = ApiError(
        "The given data was invalid.",
        status=422,
        data={"message": "The given data was invalid.", "errors": {"name": ["The name has already been taken."]}},
    )
    with patch("vito_cli.client.VitoClient.create_project", side_effect=error):
        result = runner.invoke(cli, ["projects", "create", "dup"])
    assert result.exit_code == 1
    assert "The given data was invalid." in result.stderr
    assert "already been taken" in result.stderr


def test_projects_delete_confirmed(runner, configured):
    with patch("vito_cli.client.VitoClient.delete_project") as mock_delete:
        result = runner.invoke(cli, ["projects", "delete", "3", "--yes"])
    assert result.exit_code == 0
    mock_delete.assert_called_once_with("3")
    assert "deleted" in result.output


def test_projects_delete_aborted(runner, configured):
    with patch("vito_cli.client.VitoClient.delete_project") as mock_delete:
        result = runner.invoke(cli, ["projects", "delete", "3"], input="n\n")
    assert result.exit_code != 0
    mock_delete.assert_not_called()


def test_unauthorized(runner, configured):
    error = ApiError("Unauthenticated.", status=401, data={"message": "Unauthenticated."})
    with patch("vito_cli.client.VitoClient.list_projects", side_effect=error):
        result = runner.invoke(cli, ["projects", "list"])
    assert result.exit_code == 1
    assert "Error: Unauthenticated." in result.stderr


# ---------------------------------------------------------------------------
# Servers / sites
# ---------------------------------------------------------------------------

def test_servers_reboot(runner, configured):
    with patch("vito_cli.client.VitoClient.reboot_server") as mock_reboot:
        result = runner.invoke(cli, ["servers", "reboot", "1", "2"])
    assert result.exit_code == 0
    mock_reboot.assert_called_once_with("1", "2")
    assert "Reboot initiated" in result.output


def test_servers_create_with_data(runner, configured):
    with patch("vito_cli.client.VitoClient.create_server", return_value={"id": 5}) as mock_create:
        result = runner.invoke(cli, ["servers", "create", "1", "--data", '{"name": "web", "ip": "1.2.3.4"}'])
    assert result.exit_code == 0
    mock_create.assert_called_once_with("1", {"name": "web", "ip": "1.2.3.4"})


def test_servers_create_rejects_bad_json(runner, configured):
    with patch("vito_cli.client.VitoClient.create_server") as mock_create:
        result = runner.invoke(cli, ["servers", "create", "1", "--data", "[1, 2]"])
    assert result.exit_code == 2
    mock_create.assert_not_called()


def test_sites_deploy(runner, configured):
    with patch("vito_cli.client.VitoClient.deploy", return_value={"status": "deploying"}) as mock_deploy:
        result = runner.invoke(cli, ["sites", "deploy", "1", "2", "3"])
    assert result.exit_code == 0
    mock_deploy.assert_called_once_with("1", "2", "3")
    assert "deploying" in result.output


def test_plain_text_response_printed_verbatim(runner, configured):
    with patch("vito_cli.client.VitoClient.deploy", return_value="Deployment queued"):
        result = runner.invoke(cli, ["sites", "deploy", "1", "2", "3"])
    assert result.output.strip() == "Deployment queued"


def test_databases_alias(runner, configured):
    with patch("vito_cli.client.VitoClient.list_databases", return_value={"data": []}) as mock_list:
        result = runner.invoke(cli, ["db", "list", "1", "2"])
    assert result.exit_code == 0
    mock_list.assert_called_once_with("1", "2")


def test_db_users_link(runner, configured):
    with patch("vito_cli.client.VitoClient.link_db_user", return_value={}) as mock_link:
        result = runner.invoke(cli, ["db-users", "link", "1", "2", "7", "app", "logs"])
    assert result.exit_code == 0
    mock_link.assert_called_once_with("1", "2", "7", ["app", "logs"])


def test_services_restart(runner, configured):
    with patch("vito_cli.client.VitoClient.restart_service") as mock_restart:
        result = runner.invoke(cli, ["services", "restart", "1", "2", "9"])
    assert result.exit_code == 0
    mock_restart.assert_called_once_with("1", "2", "9")


# ---------------------------------------------------------------------------
# Scripts
# ---------------------------------------------------------------------------

def test_run_script_default_user(runner, configured):
    with patch("vito_cli.client.VitoClient.run_script", return_value={"id": 1}) as mock_run:
        result = runner.invoke(cli, ["run-script", "1", "2", "echo hello"])
    assert result.exit_code == 0
    mock_run.assert_called_once_with("1", "2", "echo hello", "root")


def test_run_script_user_option(runner, configured):
    with patch("vito_cli.client.VitoClient.run_script", return_value={"id": 1}) as mock_run:
        result = runner.invoke(cli, ["run-script", "1", "2", "whoami", "-u", "www-data"])
    assert result.exit_code == 0
    mock_run.assert_called_once_with("1", "2", "whoami", "www-data")


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def test_status_overview(runner, configured):
    projects = {"data": [{"id": 1, "name": "default"}]}
    servers = {"data": [{"id": 2, "name": "web-1", "ip": "10.0.0.2", "status": "ready"}]}
    sites = {"data": [{"id": 3, "domain": "example.com", "status": "ready"}]}
    with patch("vito_cli.client.VitoClient.list_projects", return_value=projects), \
            patch("vito_cli.client.VitoClient.list_servers", return_value=servers) as mock_servers, \
            patch("vito_cli.client.VitoClient.list_sites", return_value=sites) as mock_sites:
        result = runner.invoke(cli, ["status"])
    assert result.exit_code == 0
    assert "Projects: 1" in result.output
    assert "[1] default" in result.output
    assert "web-1 (10.0.0.2) - ready" in result.output
    assert "[3] example.com - ready" in result.output
    mock_servers.assert_called_once_with(1)
    mock_sites.assert_called_once_with(1, 2)


def test_status_aborts_on_first_failure(runner, configured):
    projects = {"data": [{"id": 1, "name": "default"}, {"id": 2, "name": "other"}]}
    error = ApiError("HTTP 500", status=500, data="")
    with patch("vito_cli.client.VitoClient.list_projects", return_value=projects), \
            patch("vito_cli.client.VitoClient.list_servers", side_effect=error) as mock_servers:
        result = runner.invoke(cli, ["status"])
    assert result.exit_code == 1
    assert "[1] default" in result.output
    assert "other" not in result.output
    assert mock_servers.call_count == 1


def test_version_matches_distribution_metadata(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert version("vito-cli") in result.output
