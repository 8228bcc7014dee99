"""HTTP client for the Vito Deploy API."""
from __future__ import annotations

import json
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

Id = int | str


class ApiError(RuntimeError):
    """Non-2xx response from the API.

    ``data`` is the decoded response body (JSON value or raw text), kept so
    callers can inspect fields such as ``errors``.
    """

    def __init__(self, message: str, *, status: int, data: Any = None):
        super().__init__(message)
        self.status = status
        self.data = data


def decode_body(text: str) -> Any:
    """Parse a response body as JSON, falling back to the raw text."""
    try:
        return json.loads(text)
    except ValueError:
        return text


class VitoClient:
    """Thin wrapper around the Vito Deploy REST API."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._base_url = base_url[:-1] if base_url.endswith("/") else base_url
        self._token = token
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    def request(self, method: str, path: str, body: Any = None) -> Any:
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }
        content = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            content = json.dumps(body)

        logger.debug("api.request method=%s path=%s", method, path)
        with httpx.Client(timeout=self._timeout, transport=self._transport, follow_redirects=True) as client:
            resp = client.request(method, self._url(path), headers=headers, content=content)
        logger.debug("api.response method=%s path=%s status=%d", method, path, resp.status_code)

        data = decode_body(resp.text)
        if not resp.is_success:
            message = data.get("message") if isinstance(data, dict) else None
            if not isinstance(message, str):
                message = f"HTTP {resp.status_code}"
            raise ApiError(message, status=resp.status_code, data=data)
        return data

    @staticmethod
    def _server(project_id: Id, server_id: Id) -> str:
        return f"/api/projects/{project_id}/servers/{server_id}"

    # -- Health ---------------------------------------------------------------

    def health(self) -> Any:
        return self.request("GET", "/api/health")

    # -- Projects -------------------------------------------------------------

    def list_projects(self) -> Any:
        return self.request("GET", "/api/projects")

    def get_project(self, project_id: Id) -> Any:
        return self.request("GET", f"/api/projects/{project_id}")

    def create_project(self, name: str) -> Any:
        return self.request("POST", "/api/projects", {"name": name})

    def delete_project(self, project_id: Id) -> Any:
        return self.request("DELETE", f"/api/projects/{project_id}")

    # -- Servers --------------------------------------------------------------

    def list_servers(self, project_id: Id) -> Any:
        return self.request("GET", f"/api/projects/{project_id}/servers")

    def get_server(self, project_id: Id, server_id: Id) -> Any:
        return self.request("GET", self._server(project_id, server_id))

    def create_server(self, project_id: Id, data: dict[str, Any]) -> Any:
        return self.request("POST", f"/api/projects/{project_id}/servers", data)

    def delete_server(self, project_id: Id, server_id: Id) -> Any:
        return self.request("DELETE", self._server(project_id, server_id))

    def reboot_server(self, project_id: Id, server_id: Id) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/reboot")

    def upgrade_server(self, project_id: Id, server_id: Id) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/upgrade")

    # -- Sites ----------------------------------------------------------------

    def list_sites(self, project_id: Id, server_id: Id) -> Any:
        return self.request("GET", f"{self._server(project_id, server_id)}/sites")

    def get_site(self, project_id: Id, server_id: Id, site_id: Id) -> Any:
        return self.request("GET", f"{self._server(project_id, server_id)}/sites/{site_id}")

    def create_site(self, project_id: Id, server_id: Id, data: dict[str, Any]) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/sites", data)

    def delete_site(self, project_id: Id, server_id: Id, site_id: Id) -> Any:
        return self.request("DELETE", f"{self._server(project_id, server_id)}/sites/{site_id}")

    # -- Deployments / SSL ----------------------------------------------------

    def deploy(self, project_id: Id, server_id: Id, site_id: Id) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/sites/{site_id}/deploy")

    def list_deployments(self, project_id: Id, server_id: Id, site_id: Id) -> Any:
        return self.request("GET", f"{self._server(project_id, server_id)}/sites/{site_id}/deployments")

    def list_ssl_certs(self, project_id: Id, server_id: Id, site_id: Id) -> Any:
        return self.request("GET", f"{self._server(project_id, server_id)}/sites/{site_id}/ssls")

    def create_ssl(self, project_id: Id, server_id: Id, site_id: Id, data: dict[str, Any]) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/sites/{site_id}/ssls", data)

    # -- Databases ------------------------------------------------------------

    def list_databases(self, project_id: Id, server_id: Id) -> Any:
        return self.request("GET", f"{self._server(project_id, server_id)}/databases")

    def get_database(self, project_id: Id, server_id: Id, database_id: Id) -> Any:
        return self.request("GET", f"{self._server(project_id, server_id)}/databases/{database_id}")

    def create_database(self, project_id: Id, server_id: Id, data: dict[str, Any]) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/databases", data)

    def delete_database(self, project_id: Id, server_id: Id, database_id: Id) -> Any:
        return self.request("DELETE", f"{self._server(project_id, server_id)}/databases/{database_id}")

    # -- Database users -------------------------------------------------------

    def list_db_users(self, project_id: Id, server_id: Id) -> Any:
        return self.request("GET", f"{self._server(project_id, server_id)}/database-users")

    def create_db_user(self, project_id: Id, server_id: Id, data: dict[str, Any]) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/database-users", data)

    def delete_db_user(self, project_id: Id, server_id: Id, user_id: Id) -> Any:
        return self.request("DELETE", f"{self._server(project_id, server_id)}/database-users/{user_id}")

    def link_db_user(self, project_id: Id, server_id: Id, user_id: Id, databases: list[str]) -> Any:
        return self.request(
            "POST",
            f"{self._server(project_id, server_id)}/database-users/{user_id}",
            {"databases": databases},
        )

    # -- Services -------------------------------------------------------------

    def list_services(self, project_id: Id, server_id: Id) -> Any:
        return self.request("GET", f"{self._server(project_id, server_id)}/services")

    def restart_service(self, project_id: Id, server_id: Id, service_id: Id) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/services/{service_id}/restart")

    def start_service(self, project_id: Id, server_id: Id, service_id: Id) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/services/{service_id}/start")

    def stop_service(self, project_id: Id, server_id: Id, service_id: Id) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/services/{service_id}/stop")

    # -- Firewall -------------------------------------------------------------

    def list_firewall_rules(self, project_id: Id, server_id: Id) -> Any:
        return self.request("GET", f"{self._server(project_id, server_id)}/firewall-rules")

    def create_firewall_rule(self, project_id: Id, server_id: Id, data: dict[str, Any]) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/firewall-rules", data)

    def delete_firewall_rule(self, project_id: Id, server_id: Id, rule_id: Id) -> Any:
        return self.request("DELETE", f"{self._server(project_id, server_id)}/firewall-rules/{rule_id}")

    # -- SSH keys -------------------------------------------------------------

    def list_ssh_keys(self, project_id: Id, server_id: Id) -> Any:
        return self.request("GET", f"{self._server(project_id, server_id)}/ssh-keys")

    def create_ssh_key(self, project_id: Id, server_id: Id, data: dict[str, Any]) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/ssh-keys", data)

    def delete_ssh_key(self, project_id: Id, server_id: Id, key_id: Id) -> Any:
        return self.request("DELETE", f"{self._server(project_id, server_id)}/ssh-keys/{key_id}")

    # -- Cron jobs ------------------------------------------------------------

    def list_cron_jobs(self, project_id: Id, server_id: Id) -> Any:
        return self.request("GET", f"{self._server(project_id, server_id)}/cron-jobs")

    def create_cron_job(self, project_id: Id, server_id: Id, data: dict[str, Any]) -> Any:
        return self.request("POST", f"{self._server(project_id, server_id)}/cron-jobs", data)

    def delete_cron_job(self, project_id: Id, server_id: Id, job_id: Id) -> Any:
        return self.request("DELETE", f"{self._server(project_id, server_id)}/cron-jobs/{job_id}")

    # -- Scripts --------------------------------------------------------------

    def run_script(self, project_id: Id, server_id: Id, script: str, user: str = "root") -> Any:
        return self.request(
            "POST",
            f"{self._server(project_id, server_id)}/scripts",
            {"script": script, "user": user},
        )
