"""Remote secret store adapters.

Every adapter implements the narrow SecretStore interface; callers never see
CLI output or HTTP payloads, only ``{key: value}`` maps and RemoteStoreError.
"""
import logging
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import requests
from dotenv import dotenv_values

from .errors import NotFoundError, RemoteStoreError
from .models import AccessInfo
from .secret_cache import SecretCache

logger = logging.getLogger(__name__)


class SecretStore(ABC):
    """Primary home of secret values, keyed by (environment, key)."""

    name = "store"

    @abstractmethod
    def pull(self, environment: str) -> Dict[str, str]:
        """Return every key/value currently held for ``environment``."""

    @abstractmethod
    def push(self, environment: str, key: str, value: str) -> None:
        """Create or overwrite one key."""

    @abstractmethod
    def delete(self, environment: str, key: str) -> None:
        """Delete one key; NotFoundError if it is absent."""

    @abstractmethod
    def check_auth(self) -> str:
        """Verify credentials and return the authenticated identity."""

    def describe_access(self, environment: str) -> AccessInfo:
        return AccessInfo(team_scope=False, scope="unknown")


class MemorySecretStore(SecretStore):
    """In-process store for dry runs and tests."""

    name = "memory"

    def __init__(self, secrets: Optional[Dict[str, Dict[str, str]]] = None, access: Optional[AccessInfo] = None):
        self._data: Dict[str, Dict[str, str]] = {env: dict(values) for env, values in (secrets or {}).items()}
        self._access = access or AccessInfo(team_scope=True, scope="local")

    def pull(self, environment: str) -> Dict[str, str]:
        return dict(self._data.get(environment, {}))

    def push(self, environment: str, key: str, value: str) -> None:
        self._data.setdefault(environment, {})[key] = value

    def delete(self, environment: str, key: str) -> None:
        values = self._data.get(environment, {})
        if key not in values:
            raise NotFoundError(f"Secret {key} not found in {environment}")
        del values[key]

    def check_auth(self) -> str:
        return "memory"

    def describe_access(self, environment: str) -> AccessInfo:
        return self._access


class VercelSecretStore(SecretStore):
    """
    Vercel project environment variables through the ``vercel`` CLI.

    Staging maps to Vercel's ``preview`` target. Pulled env files are parsed
    with python-dotenv.
    """

    name = "vercel"
    TARGETS = {"development": "development", "staging": "preview", "production": "production"}

    def __init__(
        self,
        token: Optional[str] = None,
        scope: Optional[str] = None,
        timeout: int = 30,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.token = token if token is not None else os.getenv("VERCEL_TOKEN")
        self.scope = scope
        self.timeout = timeout
        self._runner = runner

    def _target(self, environment: str) -> str:
        try:
            return self.TARGETS[environment]
        except KeyError:
            raise NotFoundError(f"No Vercel target for environment: {environment}")

    def _run(self, args: List[str], input_text: Optional[str] = None) -> str:
        command = ["vercel", *args]
        if self.token:
            command += ["--token", self.token]
        if self.scope:
            command += ["--scope", self.scope]

        logger.debug(f"Running vercel {' '.join(args)}")
        try:
            result = self._runner(
                command,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise RemoteStoreError("vercel CLI not found. Install it with: npm install -g vercel") from e
        except subprocess.TimeoutExpired as e:
            raise RemoteStoreError(f"vercel {args[0]} timed out after {self.timeout}s") from e

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise RemoteStoreError(f"vercel {args[0]} failed: {detail}")
        return result.stdout

    def pull(self, environment: str) -> Dict[str, str]:
        target = self._target(environment)
        with tempfile.TemporaryDirectory() as tmp_dir:
            env_file = os.path.join(tmp_dir, f".env.{target}")
            self._run(["env", "pull", env_file, f"--environment={target}", "--yes"])
            values = dotenv_values(env_file)
        return {key: value for key, value in values.items() if value is not None}

    def push(self, environment: str, key: str, value: str) -> None:
        self._run(["env", "add", key, self._target(environment), "--force"], input_text=value)

    def delete(self, environment: str, key: str) -> None:
        self._run(["env", "rm", key, self._target(environment), "--yes"])

    def check_auth(self) -> str:
        return self._run(["whoami"]).strip()

    def describe_access(self, environment: str) -> AccessInfo:
        # Vercel team ids carry a "team_" prefix; personal accounts do not.
        org_id = os.getenv("VERCEL_ORG_ID", "")
        scope = self.scope or org_id
        return AccessInfo(team_scope=bool(self.scope) or org_id.startswith("team_"), scope=scope)


class RenderSecretStore(SecretStore):
    """Render service environment variables through the REST API."""

    name = "render"

    def __init__(
        self,
        service_ids: Dict[str, str],
        api_token: Optional[str] = None,
        api_url: str = "https://api.render.com/v1",
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        self.service_ids = service_ids or {}
        self.api_token = api_token if api_token is not None else os.getenv("RENDER_API_TOKEN")
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _service_id(self, environment: str) -> str:
        service_id = self.service_ids.get(environment)
        if not service_id:
            raise RemoteStoreError(
                f"No Render service configured for {environment}. Set store.render.service_ids.{environment}"
            )
        return service_id

    def _request(self, method: str, path: str, **kwargs) -> Any:
        if not self.api_token:
            raise RemoteStoreError("RENDER_API_TOKEN is not set")
        headers = {"Authorization": f"Bearer {self.api_token}", "Accept": "application/json"}
        try:
            response = self.session.request(
                method, f"{self.api_url}{path}", headers=headers, timeout=self.timeout, **kwargs
            )
            if response.status_code == 404:
                raise NotFoundError(f"Render resource not found: {path}")
            response.raise_for_status()
        except requests.RequestException as e:
            raise RemoteStoreError(f"Render API {method} {path} failed: {e}") from e
        return response.json() if response.content else None

    def pull(self, environment: str) -> Dict[str, str]:
        service_id = self._service_id(environment)
        values: Dict[str, str] = {}
        cursor = None
        while True:
            params = {"limit": 100}
            if cursor:
                params["cursor"] = cursor
            page = self._request("GET", f"/services/{service_id}/env-vars", params=params) or []
            for item in page:
                env_var = item.get("envVar", {})
                values[env_var["key"]] = env_var.get("value", "")
            if len(page) < 100:
                return values
            cursor = page[-1].get("cursor")

    def push(self, environment: str, key: str, value: str) -> None:
        service_id = self._service_id(environment)
        self._request("PUT", f"/services/{service_id}/env-vars/{key}", json={"value": value})

    def delete(self, environment: str, key: str) -> None:
        service_id = self._service_id(environment)
        self._request("DELETE", f"/services/{service_id}/env-vars/{key}")

    def check_auth(self) -> str:
        owners = self._request("GET", "/owners", params={"limit": 1}) or []
        if not owners:
            raise RemoteStoreError("Render API token has no accessible owners")
        return owners[0].get("owner", {}).get("name", "unknown")

    def describe_access(self, environment: str) -> AccessInfo:
        service = self._request("GET", f"/services/{self._service_id(environment)}")
        owner = self._request("GET", f"/owners/{service['ownerId']}")
        return AccessInfo(team_scope=owner.get("type") == "team", scope=owner.get("name", ""))


class RailwaySecretStore(SecretStore):
    """Railway service variables through the public GraphQL API."""

    name = "railway"

    VARIABLES_QUERY = """
    query variables($projectId: String!, $environmentId: String!, $serviceId: String) {
      variables(projectId: $projectId, environmentId: $environmentId, serviceId: $serviceId)
    }
    """
    UPSERT_MUTATION = """
    mutation variableUpsert($input: VariableUpsertInput!) {
      variableUpsert(input: $input)
    }
    """
    DELETE_MUTATION = """
    mutation variableDelete($input: VariableDeleteInput!) {
      variableDelete(input: $input)
    }
    """
    ME_QUERY = "query { me { email name } }"
    PROJECT_QUERY = """
    query project($id: String!) {
      project(id: $id) { name team { name } }
    }
    """

    def __init__(
        self,
        project_id: str,
        environment_ids: Dict[str, str],
        service_id: Optional[str] = None,
        api_token: Optional[str] = None,
        api_url: str = "https://backboard.railway.app/graphql/v2",
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        self.project_id = project_id
        self.environment_ids = environment_ids or {}
        self.service_id = service_id
        self.api_token = api_token if api_token is not None else os.getenv("RAILWAY_API_TOKEN")
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _scope(self, environment: str) -> Dict[str, Optional[str]]:
        environment_id = self.environment_ids.get(environment)
        if not self.project_id or not environment_id:
            raise RemoteStoreError(
                f"No Railway environment configured for {environment}. "
                f"Set store.railway.project_id and store.railway.environment_ids.{environment}"
            )
        return {"projectId": self.project_id, "environmentId": environment_id, "serviceId": self.service_id}

    def _execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.api_token:
            raise RemoteStoreError("RAILWAY_API_TOKEN is not set")
        try:
            response = self.session.post(
                self.api_url,
                json={"query": query, "variables": variables or {}},
                headers={"Authorization": f"Bearer {self.api_token}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise RemoteStoreError(f"Railway API request failed: {e}") from e
        except ValueError as e:
            raise RemoteStoreError(f"Railway API returned invalid JSON: {e}") from e

        if body.get("errors"):
            messages = "; ".join(error.get("message", "unknown error") for error in body["errors"])
            raise RemoteStoreError(f"Railway API error: {messages}")
        return body.get("data") or {}

    def pull(self, environment: str) -> Dict[str, str]:
        data = self._execute(self.VARIABLES_QUERY, self._scope(environment))
        return dict(data.get("variables") or {})

    def push(self, environment: str, key: str, value: str) -> None:
        self._execute(self.UPSERT_MUTATION, {"input": {**self._scope(environment), "name": key, "value": value}})

    def delete(self, environment: str, key: str) -> None:
        self._execute(self.DELETE_MUTATION, {"input": {**self._scope(environment), "name": key}})

    def check_auth(self) -> str:
        me = self._execute(self.ME_QUERY).get("me") or {}
        return me.get("email") or me.get("name") or "unknown"

    def describe_access(self, environment: str) -> AccessInfo:
        project = self._execute(self.PROJECT_QUERY, {"id": self.project_id}).get("project") or {}
        team = project.get("team")
        return AccessInfo(team_scope=team is not None, scope=(team or {}).get("name", project.get("name", "")))


class CachedSecretStore(SecretStore):
    """Wraps a store so repeated pulls of one environment hit the cache."""

    def __init__(self, store: SecretStore, cache: Optional[SecretCache] = None):
        self.store = store
        self.cache = cache or SecretCache()
        self.name = store.name

    def pull(self, environment: str) -> Dict[str, str]:
        cached = self.cache.get(environment)
        if cached is not None:
            return cached
        values = self.store.pull(environment)
        self.cache.put(environment, values)
        return dict(values)

    def push(self, environment: str, key: str, value: str) -> None:
        self.store.push(environment, key, value)
        self.cache.invalidate(environment)

    def delete(self, environment: str, key: str) -> None:
        self.store.delete(environment, key)
        self.cache.invalidate(environment)

    def check_auth(self) -> str:
        return self.store.check_auth()

    def describe_access(self, environment: str) -> AccessInfo:
        return self.store.describe_access(environment)


def create_store(config: Dict[str, Any]) -> SecretStore:
    """Build the adapter selected by ``store.platform``."""
    store_config = config.get("store", {})
    platform = store_config.get("platform", "vercel")
    timeout = store_config.get("timeout", 30)

    if platform == "memory":
        return MemorySecretStore()
    if platform == "vercel":
        vercel = store_config.get("vercel") or {}
        return VercelSecretStore(scope=vercel.get("scope"), timeout=timeout)
    if platform == "render":
        render = store_config.get("render") or {}
        return RenderSecretStore(
            service_ids=render.get("service_ids") or {},
            api_url=render.get("api_url", "https://api.render.com/v1"),
            timeout=timeout,
        )
    if platform == "railway":
        railway = store_config.get("railway") or {}
        return RailwaySecretStore(
            project_id=railway.get("project_id"),
            environment_ids=railway.get("environment_ids") or {},
            service_id=railway.get("service_id"),
            api_url=railway.get("api_url", "https://backboard.railway.app/graphql/v2"),
            timeout=timeout,
        )
    if platform == "gcp":
        # Imported here: gcp_client depends on this module.
        from .gcp_client import GCPSecretStore

        return GCPSecretStore(config)

    raise ValueError(f"Unsupported store platform: {platform}")
