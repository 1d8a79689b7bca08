"""GitHub Actions repository secrets client."""
import logging
import os
from typing import List, Optional

import requests

from .encryption import encrypt_value
from .errors import RemoteStoreError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
PAGE_SIZE = 100


class GitHubSecretsClient:
    """
    Thin wrapper over the repository ``actions/secrets`` endpoints.

    Values are encrypted with encrypt_value (AES-256-GCM, key derived from
    GITHUB_SECRET_KEY) before they leave the process.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: Optional[str] = None,
        secret_key: Optional[str] = None,
        key_id: Optional[str] = None,
        api_url: str = GITHUB_API_URL,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        self.owner = owner
        self.repo = repo
        self.token = token if token is not None else os.getenv("GITHUB_TOKEN")
        self.secret_key = secret_key if secret_key is not None else os.getenv("GITHUB_SECRET_KEY")
        self.key_id = key_id if key_id is not None else os.getenv("GITHUB_SECRET_KEY_ID")
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: dict) -> Optional["GitHubSecretsClient"]:
        """Build a client when owner, repo and GITHUB_TOKEN are all available."""
        github = config.get("github") or {}
        owner, repo = github.get("owner"), github.get("repo")
        if not owner or not repo or not os.getenv("GITHUB_TOKEN"):
            logger.debug("GitHub sync not configured (github.owner, github.repo or GITHUB_TOKEN missing)")
            return None
        return cls(owner, repo, api_url=github.get("api_url", GITHUB_API_URL))

    @property
    def _secrets_url(self) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}/actions/secrets"

    def _headers(self) -> dict:
        if not self.token:
            raise RemoteStoreError("GITHUB_TOKEN environment variable is required")
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github.v3+json",
        }

    def list_secret_names(self) -> List[str]:
        names: List[str] = []
        page = 1
        while True:
            try:
                response = self.session.get(
                    self._secrets_url,
                    headers=self._headers(),
                    params={"per_page": PAGE_SIZE, "page": page},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                body = response.json()
            except requests.RequestException as e:
                raise RemoteStoreError(f"Failed to get GitHub secrets: {e}") from e

            batch = [secret["name"] for secret in body.get("secrets", [])]
            names.extend(batch)
            if len(batch) < PAGE_SIZE:
                return names
            page += 1

    def has_secret_access(self) -> bool:
        """True if the token can read the repository's secret list."""
        try:
            response = self.session.get(
                self._secrets_url, headers=self._headers(), params={"per_page": 1}, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning(f"GitHub access check failed: {e}")
            return False
        return response.status_code == 200

    def put_secret(self, name: str, value: str) -> None:
        if not self.secret_key:
            raise RemoteStoreError("GITHUB_SECRET_KEY environment variable is required to encrypt secrets")
        payload = {"encrypted_value": encrypt_value(value, self.secret_key)}
        if self.key_id:
            payload["key_id"] = self.key_id
        try:
            response = self.session.put(
                f"{self._secrets_url}/{name}", headers=self._headers(), json=payload, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise RemoteStoreError(f"Failed to update GitHub secret {name}: {e}") from e
        logger.debug(f"Updated GitHub secret {name}")

    def delete_secret(self, name: str) -> None:
        try:
            response = self.session.delete(
                f"{self._secrets_url}/{name}", headers=self._headers(), timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise RemoteStoreError(f"Failed to delete GitHub secret {name}: {e}") from e
