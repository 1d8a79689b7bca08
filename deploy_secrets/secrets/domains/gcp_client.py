"""GCP Secret Manager store adapter."""
import os
import logging
from typing import Optional, Dict, Any
from google.api_core import exceptions as gcp_exceptions
from google.cloud import secretmanager

from .errors import NotFoundError, RemoteStoreError
from .models import AccessInfo
from .stores import SecretStore

logger = logging.getLogger(__name__)

# Secret ids are "<environment>--<KEY>"; GCP has no per-environment namespace.
SECRET_ID_SEPARATOR = "--"
PUBLIC_MEMBERS = ("allUsers", "allAuthenticatedUsers")


def secret_id(environment: str, key: str) -> str:
    return f"{environment}{SECRET_ID_SEPARATOR}{key}"


class GCPSecretStore(SecretStore):
    """
    Secrets kept in Google Cloud Secret Manager.

    Each key is one GCP secret labelled ``environment=<env>``; values are the
    latest secret version.
    """

    name = "gcp"

    def __init__(self, config: Optional[Dict[str, Any]] = None, client=None):
        self._config = config or {}
        self._client = client

        # Set GOOGLE_APPLICATION_CREDENTIALS from config
        auth = self._config.get("authentication") or {}
        if auth.get("service_account_path") and client is None:
            os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = auth["service_account_path"]
            logger.info(f"Set GOOGLE_APPLICATION_CREDENTIALS from config: {auth['service_account_path']}")

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def get_project_id(self) -> str:
        """
        Get GCP project ID from environment variable or config.

        Priority order:
        1. GCP_PROJECT environment variable (allows override)
        2. store.gcp.project_id in the config file

        Raises:
            RemoteStoreError: If project_id is not found in config or environment
        """
        gcp_project_env = os.getenv("GCP_PROJECT")
        if gcp_project_env:
            logger.debug(f"Using GCP_PROJECT from environment: {gcp_project_env}")
            return gcp_project_env

        project_id = ((self._config.get("store") or {}).get("gcp") or {}).get("project_id")
        if project_id:
            logger.debug(f"Using project_id from config: {project_id}")
            return project_id

        raise RemoteStoreError(
            "Project ID not found. Please set GCP_PROJECT environment variable "
            "or configure store.gcp.project_id in config file"
        )

    def _secret_path(self, environment: str, key: str) -> str:
        return f"projects/{self.get_project_id()}/secrets/{secret_id(environment, key)}"

    def pull(self, environment: str) -> Dict[str, str]:
        parent = f"projects/{self.get_project_id()}"
        prefix = f"{environment}{SECRET_ID_SEPARATOR}"
        values: Dict[str, str] = {}
        try:
            for secret in self.client.list_secrets(
                request={"parent": parent, "filter": f"labels.environment={environment}"}
            ):
                secret_name = secret.name.split("/")[-1]
                if not secret_name.startswith(prefix):
                    continue
                response = self.client.access_secret_version(
                    request={"name": f"{secret.name}/versions/latest"}
                )
                values[secret_name[len(prefix):]] = response.payload.data.decode("UTF-8")
        except gcp_exceptions.GoogleAPICallError as e:
            raise RemoteStoreError(f"GCP fetch failed for {environment}: {e}") from e
        return values

    def push(self, environment: str, key: str, value: str) -> None:
        parent = f"projects/{self.get_project_id()}"
        try:
            try:
                self.client.create_secret(
                    request={
                        "parent": parent,
                        "secret_id": secret_id(environment, key),
                        "secret": {
                            "replication": {"automatic": {}},
                            "labels": {"environment": environment},
                        },
                    }
                )
                logger.debug(f"Created GCP secret {secret_id(environment, key)}")
            except gcp_exceptions.AlreadyExists:
                pass
            self.client.add_secret_version(
                request={
                    "parent": self._secret_path(environment, key),
                    "payload": {"data": value.encode("UTF-8")},
                }
            )
        except gcp_exceptions.GoogleAPICallError as e:
            raise RemoteStoreError(f"GCP write failed for {key} in {environment}: {e}") from e

    def delete(self, environment: str, key: str) -> None:
        try:
            self.client.delete_secret(request={"name": self._secret_path(environment, key)})
        except gcp_exceptions.NotFound as e:
            raise NotFoundError(f"Secret {key} not found in {environment}") from e
        except gcp_exceptions.GoogleAPICallError as e:
            raise RemoteStoreError(f"GCP delete failed for {key} in {environment}: {e}") from e

    def check_auth(self) -> str:
        project_id = self.get_project_id()
        try:
            next(iter(self.client.list_secrets(request={"parent": f"projects/{project_id}", "page_size": 1})), None)
        except gcp_exceptions.GoogleAPICallError as e:
            raise RemoteStoreError(f"GCP authentication failed for project {project_id}: {e}") from e
        return f"project {project_id}"

    def describe_access(self, environment: str) -> AccessInfo:
        """IAM is project scoped; secrets granted to public members are reported as permissive."""
        project_id = self.get_project_id()
        permissive = []
        try:
            for secret in self.client.list_secrets(
                request={"parent": f"projects/{project_id}", "filter": f"labels.environment={environment}"}
            ):
                policy = self.client.get_iam_policy(request={"resource": secret.name})
                for binding in policy.bindings:
                    if any(member in PUBLIC_MEMBERS for member in binding.members):
                        permissive.append(secret.name.split("/")[-1])
                        break
        except gcp_exceptions.GoogleAPICallError as e:
            raise RemoteStoreError(f"GCP IAM lookup failed for {environment}: {e}") from e
        return AccessInfo(team_scope=True, scope=f"projects/{project_id}", permissive=permissive)
