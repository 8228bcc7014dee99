"""vito CLI: command-line interface for the Vito Deploy API."""
from __future__ import annotations

import json
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Any, NoReturn

import click
import httpx

from vito_cli.client import ApiError, VitoClient
from vito_cli.config import TOKEN_VAR, URL_VAR, ConfigurationMissing, Credentials, config_path, persist
from vito_cli.config import require as require_credentials
from vito_cli.config import resolve as resolve_credentials
from vito_cli.logging import configure_logging, register_secret

try:
    __version__ = version("vito-cli")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"


def _get_client() -> VitoClient:
    try:
        creds = require_credentials()
    except ConfigurationMissing as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    register_secret(creds.token)
    return VitoClient(creds.url, creds.token)


def _out(data: Any) -> None:
    if isinstance(data, str):
        click.echo(data)
    else:
        click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _fail(exc: Exception) -> NoReturn:
    click.echo(f"Error: {exc}", err=True)
    if isinstance(exc, ApiError) and isinstance(exc.data, dict) and exc.data.get("errors"):
        click.echo(json.dumps(exc.data["errors"], indent=2, ensure_ascii=False), err=True)
    sys.exit(1)


def _items(payload: Any) -> list[dict]:
    """Rows of a paginated listing (``{"data": [...]}``)."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return [row for row in payload["data"] if isinstance(row, dict)]
    return []


def _mask(token: str) -> str:
    return "***" + token[-4:] if token else "not set"


class JsonObject(click.ParamType):
    """A JSON object given on the command line, e.g. ``--data '{"name": "x"}'``."""

    name = "json"

    def convert(self, value, param, ctx):
        if isinstance(value, dict):
            return value
        try:
            data = json.loads(value)
        except ValueError:
            self.fail(f"{value!r} is not valid JSON", param, ctx)
        if not isinstance(data, dict):
            self.fail("expected a JSON object", param, ctx)
        return data


JSON_OBJECT = JsonObject()

# InvalidURL is not an HTTPError subclass
API_ERRORS = (ApiError, httpx.HTTPError, httpx.InvalidURL)


# ---------------------------------------------------------------------------
# CLI root
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(__version__, prog_name="vito")
@click.option("-v", "--verbose", is_flag=True, help="Write debug logs to stderr")
def cli(verbose):
    """Command-line client for the Vito Deploy API."""
    configure_logging(verbose=verbose)


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------

@cli.group(invoke_without_command=True)
@click.pass_context
def config(ctx):
    """Show or update the CLI configuration."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(config_show)


@config.command("show")
def config_show():
    """Show the effective configuration."""
    creds = resolve_credentials()
    if creds:
        click.echo(f"URL:    {creds.url}")
        click.echo(f"Token:  {_mask(creds.token)}")
        click.echo(f"Source: {creds.source}")
    else:
        click.echo(
            f"Not configured. Run 'vito config set', create a .env file, "
            f"or set {URL_VAR} and {TOKEN_VAR} env vars."
        )
    click.echo(f"Config file: {config_path()}")


@config.command("set")
@click.option("--url", required=True, help="Vito instance URL, e.g. https://vito.example.com")
@click.option("--token", prompt=True, hide_input=True, help="API token")
def config_set(url, token):
    """Save URL and token to the user config file."""
    if not url or not token:
        click.echo("Error: both --url and --token must be non-empty.", err=True)
        sys.exit(1)
    path = persist(Credentials(url=url, token=token))
    click.echo(f"Saved to {path}")
    creds = resolve_credentials()
    if creds is not None and creds.source == "env":
        click.echo(f"Note: {URL_VAR}/{TOKEN_VAR} are set and take priority over the saved file.")


# ---------------------------------------------------------------------------
# Health command
# ---------------------------------------------------------------------------

@cli.command("health")
def health():
    """Check API health."""
    client = _get_client()
    try:
        _out(client.health())
    except API_ERRORS as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# Project commands
# ---------------------------------------------------------------------------

@cli.group()
def projects():
    """Manage projects."""


@projects.command("list")
def projects_list():
    """List all projects."""
    client = _get_client()
    try:
        _out(client.list_projects())
    except API_ERRORS as exc:
        _fail(exc)


@projects.command("get")
@click.argument("project_id")
def projects_get(project_id):
    """Get a project by ID."""
    client = _get_client()
    try:
        _out(client.get_project(project_id))
    except API_ERRORS as exc:
        _fail(exc)


@projects.command("create")
@click.argument("name")
def projects_create(name):
    """Create a project."""
    client = _get_client()
    try:
        _out(client.create_project(name))
    except API_ERRORS as exc:
        _fail(exc)


@projects.command("delete")
@click.argument("project_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
def projects_delete(project_id, yes):
    """Delete a project."""
    if not yes:
        click.confirm(f"Delete project {project_id}?", abort=True)
    client = _get_client()
    try:
        client.delete_project(project_id)
        click.echo(f"Project {project_id} deleted.")
    except API_ERRORS as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# Server commands
# ---------------------------------------------------------------------------

@cli.group()
def servers():
    """Manage servers."""


@servers.command("list")
@click.argument("project_id")
def servers_list(project_id):
    """List servers in a project."""
    client = _get_client()
    try:
        _out(client.list_servers(project_id))
    except API_ERRORS as exc:
        _fail(exc)


@servers.command("get")
@click.argument("project_id")
@click.argument("server_id")
def servers_get(project_id, server_id):
    """Get server details."""
    client = _get_client()
    try:
        _out(client.get_server(project_id, server_id))
    except API_ERRORS as exc:
        _fail(exc)


@servers.command("create")
@click.argument("project_id")
@click.option("--data", type=JSON_OBJECT, required=True, help="Server fields as a JSON object")
def servers_create(project_id, data):
    """Create a server in a project."""
    client = _get_client()
    try:
        _out(client.create_server(project_id, data))
    except API_ERRORS as exc:
        _fail(exc)


@servers.command("delete")
@click.argument("project_id")
@click.argument("server_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
def servers_delete(project_id, server_id, yes):
    """Delete a server."""
    if not yes:
        click.confirm(f"Delete server {server_id} from project {project_id}?", abort=True)
    client = _get_client()
    try:
        client.delete_server(project_id, server_id)
        click.echo(f"Server {server_id} deleted.")
    except API_ERRORS as exc:
        _fail(exc)


@servers.command("reboot")
@click.argument("project_id")
@click.argument("server_id")
def servers_reboot(project_id, server_id):
    """Reboot a server."""
    client = _get_client()
    try:
        client.reboot_server(project_id, server_id)
        click.echo("Reboot initiated.")
    except API_ERRORS as exc:
        _fail(exc)


@servers.command("upgrade")
@click.argument("project_id")
@click.argument("server_id")
def servers_upgrade(project_id, server_id):
    """Upgrade server packages."""
    client = _get_client()
    try:
        client.upgrade_server(project_id, server_id)
        click.echo("Upgrade initiated.")
    except API_ERRORS as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# Site commands
# ---------------------------------------------------------------------------

@cli.group()
def sites():
    """Manage sites."""


@sites.command("list")
@click.argument("project_id")
@click.argument("server_id")
def sites_list(project_id, server_id):
    """List sites on a server."""
    client = _get_client()
    try:
        _out(client.list_sites(project_id, server_id))
    except API_ERRORS as exc:
        _fail(exc)


@sites.command("get")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("site_id")
def sites_get(project_id, server_id, site_id):
    """Get site details."""
    client = _get_client()
    try:
        _out(client.get_site(project_id, server_id, site_id))
    except API_ERRORS as exc:
        _fail(exc)


@sites.command("create")
@click.argument("project_id")
@click.argument("server_id")
@click.option("--data", type=JSON_OBJECT, required=True, help="Site fields as a JSON object")
def sites_create(project_id, server_id, data):
    """Create a site on a server."""
    client = _get_client()
    try:
        _out(client.create_site(project_id, server_id, data))
    except API_ERRORS as exc:
        _fail(exc)


@sites.command("delete")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("site_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
def sites_delete(project_id, server_id, site_id, yes):
    """Delete a site."""
    if not yes:
        click.confirm(f"Delete site {site_id}?", abort=True)
    client = _get_client()
    try:
        client.delete_site(project_id, server_id, site_id)
        click.echo(f"Site {site_id} deleted.")
    except API_ERRORS as exc:
        _fail(exc)


@sites.command("deploy")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("site_id")
def sites_deploy(project_id, server_id, site_id):
    """Trigger a deployment for a site."""
    client = _get_client()
    try:
        _out(client.deploy(project_id, server_id, site_id))
    except API_ERRORS as exc:
        _fail(exc)


@sites.command("deployments")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("site_id")
def sites_deployments(project_id, server_id, site_id):
    """List deployments of a site."""
    client = _get_client()
    try:
        _out(client.list_deployments(project_id, server_id, site_id))
    except API_ERRORS as exc:
        _fail(exc)


@sites.command("ssls")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("site_id")
def sites_ssls(project_id, server_id, site_id):
    """List SSL certificates of a site."""
    client = _get_client()
    try:
        _out(client.list_ssl_certs(project_id, server_id, site_id))
    except API_ERRORS as exc:
        _fail(exc)


@sites.command("ssl-create")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("site_id")
@click.option("--data", type=JSON_OBJECT, required=True, help="Certificate fields as a JSON object")
def sites_ssl_create(project_id, server_id, site_id, data):
    """Create an SSL certificate for a site."""
    client = _get_client()
    try:
        _out(client.create_ssl(project_id, server_id, site_id, data))
    except API_ERRORS as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# Database commands
# ---------------------------------------------------------------------------

@cli.group()
def databases():
    """Manage databases."""


cli.add_command(databases, name="db")


@databases.command("list")
@click.argument("project_id")
@click.argument("server_id")
def databases_list(project_id, server_id):
    """List databases on a server."""
    client = _get_client()
    try:
        _out(client.list_databases(project_id, server_id))
    except API_ERRORS as exc:
        _fail(exc)


@databases.command("get")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("database_id")
def databases_get(project_id, server_id, database_id):
    """Get database details."""
    client = _get_client()
    try:
        _out(client.get_database(project_id, server_id, database_id))
    except API_ERRORS as exc:
        _fail(exc)


@databases.command("create")
@click.argument("project_id")
@click.argument("server_id")
@click.option("--data", type=JSON_OBJECT, required=True, help="Database fields as a JSON object")
def databases_create(project_id, server_id, data):
    """Create a database."""
    client = _get_client()
    try:
        _out(client.create_database(project_id, server_id, data))
    except API_ERRORS as exc:
        _fail(exc)


@databases.command("delete")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("database_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
def databases_delete(project_id, server_id, database_id, yes):
    """Delete a database."""
    if not yes:
        click.confirm(f"Delete database {database_id}?", abort=True)
    client = _get_client()
    try:
        client.delete_database(project_id, server_id, database_id)
        click.echo(f"Database {database_id} deleted.")
    except API_ERRORS as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# Database user commands
# ---------------------------------------------------------------------------

@cli.group("db-users")
def db_users():
    """Manage database users."""


@db_users.command("list")
@click.argument("project_id")
@click.argument("server_id")
def db_users_list(project_id, server_id):
    """List database users on a server."""
    client = _get_client()
    try:
        _out(client.list_db_users(project_id, server_id))
    except API_ERRORS as exc:
        _fail(exc)


@db_users.command("create")
@click.argument("project_id")
@click.argument("server_id")
@click.option("--data", type=JSON_OBJECT, required=True, help="User fields as a JSON object")
def db_users_create(project_id, server_id, data):
    """Create a database user."""
    client = _get_client()
    try:
        _out(client.create_db_user(project_id, server_id, data))
    except API_ERRORS as exc:
        _fail(exc)


@db_users.command("delete")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("user_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
def db_users_delete(project_id, server_id, user_id, yes):
    """Delete a database user."""
    if not yes:
        click.confirm(f"Delete database user {user_id}?", abort=True)
    client = _get_client()
    try:
        client.delete_db_user(project_id, server_id, user_id)
        click.echo(f"Database user {user_id} deleted.")
    except API_ERRORS as exc:
        _fail(exc)


@db_users.command("link")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("user_id")
@click.argument("databases", nargs=-1, required=True)
def db_users_link(project_id, server_id, user_id, databases):
    """Link a database user to DATABASES (replaces existing links)."""
    client = _get_client()
    try:
        _out(client.link_db_user(project_id, server_id, user_id, list(databases)))
    except API_ERRORS as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# Service commands
# ---------------------------------------------------------------------------

@cli.group()
def services():
    """Manage services."""


@services.command("list")
@click.argument("project_id")
@click.argument("server_id")
def services_list(project_id, server_id):
    """List services on a server."""
    client = _get_client()
    try:
        _out(client.list_services(project_id, server_id))
    except API_ERRORS as exc:
        _fail(exc)


@services.command("restart")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("service_id")
def services_restart(project_id, server_id, service_id):
    """Restart a service."""
    client = _get_client()
    try:
        client.restart_service(project_id, server_id, service_id)
        click.echo("Service restarting.")
    except API_ERRORS as exc:
        _fail(exc)


@services.command("start")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("service_id")
def services_start(project_id, server_id, service_id):
    """Start a service."""
    client = _get_client()
    try:
        client.start_service(project_id, server_id, service_id)
        click.echo("Service starting.")
    except API_ERRORS as exc:
        _fail(exc)


@services.command("stop")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("service_id")
def services_stop(project_id, server_id, service_id):
    """Stop a service."""
    client = _get_client()
    try:
        client.stop_service(project_id, server_id, service_id)
        click.echo("Service stopping.")
    except API_ERRORS as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# Firewall, SSH key and cron commands
# ---------------------------------------------------------------------------

@cli.group()
def firewall():
    """Manage firewall rules."""


@firewall.command("list")
@click.argument("project_id")
@click.argument("server_id")
def firewall_list(project_id, server_id):
    """List firewall rules."""
    client = _get_client()
    try:
        _out(client.list_firewall_rules(project_id, server_id))
    except API_ERRORS as exc:
        _fail(exc)


@firewall.command("create")
@click.argument("project_id")
@click.argument("server_id")
@click.option("--data", type=JSON_OBJECT, required=True, help="Rule fields as a JSON object")
def firewall_create(project_id, server_id, data):
    """Create a firewall rule."""
    client = _get_client()
    try:
        _out(client.create_firewall_rule(project_id, server_id, data))
    except API_ERRORS as exc:
        _fail(exc)


@firewall.command("delete")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("rule_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
def firewall_delete(project_id, server_id, rule_id, yes):
    """Delete a firewall rule."""
    if not yes:
        click.confirm(f"Delete firewall rule {rule_id}?", abort=True)
    client = _get_client()
    try:
        client.delete_firewall_rule(project_id, server_id, rule_id)
        click.echo(f"Firewall rule {rule_id} deleted.")
    except API_ERRORS as exc:
        _fail(exc)


@cli.group("ssh-keys")
def ssh_keys():
    """Manage SSH keys."""


@ssh_keys.command("list")
@click.argument("project_id")
@click.argument("server_id")
def ssh_keys_list(project_id, server_id):
    """List SSH keys."""
    client = _get_client()
    try:
        _out(client.list_ssh_keys(project_id, server_id))
    except API_ERRORS as exc:
        _fail(exc)


@ssh_keys.command("create")
@click.argument("project_id")
@click.argument("server_id")
@click.option("--data", type=JSON_OBJECT, required=True, help="Key fields as a JSON object")
def ssh_keys_create(project_id, server_id, data):
    """Add an SSH key to a server."""
    client = _get_client()
    try:
        _out(client.create_ssh_key(project_id, server_id, data))
    except API_ERRORS as exc:
        _fail(exc)


@ssh_keys.command("delete")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("key_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
def ssh_keys_delete(project_id, server_id, key_id, yes):
    """Remove an SSH key from a server."""
    if not yes:
        click.confirm(f"Delete SSH key {key_id}?", abort=True)
    client = _get_client()
    try:
        client.delete_ssh_key(project_id, server_id, key_id)
        click.echo(f"SSH key {key_id} deleted.")
    except API_ERRORS as exc:
        _fail(exc)


@cli.group()
def cron():
    """Manage cron jobs."""


@cron.command("list")
@click.argument("project_id")
@click.argument("server_id")
def cron_list(project_id, server_id):
    """List cron jobs."""
    client = _get_client()
    try:
        _out(client.list_cron_jobs(project_id, server_id))
    except API_ERRORS as exc:
        _fail(exc)


@cron.command("create")
@click.argument("project_id")
@click.argument("server_id")
@click.option("--data", type=JSON_OBJECT, required=True, help="Cron job fields as a JSON object")
def cron_create(project_id, server_id, data):
    """Create a cron job."""
    client = _get_client()
    try:
        _out(client.create_cron_job(project_id, server_id, data))
    except API_ERRORS as exc:
        _fail(exc)


@cron.command("delete")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("job_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
def cron_delete(project_id, server_id, job_id, yes):
    """Delete a cron job."""
    if not yes:
        click.confirm(f"Delete cron job {job_id}?", abort=True)
    client = _get_client()
    try:
        client.delete_cron_job(project_id, server_id, job_id)
        click.echo(f"Cron job {job_id} deleted.")
    except API_ERRORS as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# Script command
# ---------------------------------------------------------------------------

@cli.command("run-script")
@click.argument("project_id")
@click.argument("server_id")
@click.argument("script")
@click.option("-u", "--user", default="root", show_default=True, help="User to run as")
def run_script(project_id, server_id, script, user):
    """Run SCRIPT on a server."""
    client = _get_client()
    try:
        _out(client.run_script(project_id, server_id, script, user))
    except API_ERRORS as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# Status command
# ---------------------------------------------------------------------------

@cli.command("status")
def status():
    """Quick overview: projects, servers and sites."""
    client = _get_client()
    try:
        project_rows = _items(client.list_projects())
        click.echo(f"\nProjects: {len(project_rows)}")
        for p in project_rows:
            click.echo(f"\n  [{p.get('id')}] {p.get('name')}")
            for s in _items(client.list_servers(p.get("id"))):
                click.echo(f"    [{s.get('id')}] {s.get('name')} ({s.get('ip')}) - {s.get('status')}")
                for site in _items(client.list_sites(p.get("id"), s.get("id"))):
                    click.echo(f"      [{site.get('id')}] {site.get('domain')} - {site.get('status')}")
        click.echo("")
    except API_ERRORS as exc:
        _fail(exc)


if __name__ == "__main__":
    cli()
