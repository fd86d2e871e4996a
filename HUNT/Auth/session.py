"""
Backend Sessions

Purpose: Produce an opaque Session (bearer token) for the hunting backend.

Responsibilities:
- InteractiveUser: OAuth2 device-code flow, analyst signs in on a browser
- ServicePrincipalSecret: OAuth2 client-credentials flow
- ServicePrincipalCertificate: not implemented, fails loudly

Design notes:
- Secrets come from the environment (name configured in config.yml),
  are read once when the authenticator is built, and are never logged
- Tokens are only exposed through Session.authorization_header()
"""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests

from HUNT.errors import AuthenticationError, ConfigError

__all__ = [
	"Session",
	"Authenticator",
	"InteractiveUser",
	"ServicePrincipalSecret",
	"ServicePrincipalCertificate",
	"build_authenticator",
]

logger = logging.getLogger(__name__)

AUTHORITY = "https://login.microsoftonline.com"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
DELEGATED_SCOPE = "https://graph.microsoft.com/ThreatHunting.Read.All offline_access"
TOKEN_TIMEOUT = 30


@dataclass(frozen=True)
class Session:
	"""Opaque backend credential."""

	access_token: str = field(repr=False)
	expires_at: float = 0.0

	def is_expired(self, skew: float = 60.0) -> bool:
		return bool(self.expires_at) and time.time() >= self.expires_at - skew

	def authorization_header(self) -> Dict[str, str]:
		return {"Authorization": f"Bearer {self.access_token}"}


def _session_from_token_response(payload: Dict[str, Any]) -> Session:
	token = payload.get("access_token")
	if not isinstance(token, str) or not token:
		raise AuthenticationError("Token endpoint response did not contain an access token")
	try:
		expires_in = int(payload.get("expires_in", 3600))
	except (TypeError, ValueError):
		expires_in = 3600
	return Session(access_token=token, expires_at=time.time() + expires_in)


def _post_form(url: str, data: Dict[str, str]) -> requests.Response:
	try:
		return requests.post(url, data=data, timeout=TOKEN_TIMEOUT)
	except requests.exceptions.RequestException as e:
		raise AuthenticationError(f"Unable to reach {url}: {e}") from e


def _error_message(response: requests.Response) -> str:
	try:
		body = response.json()
	except ValueError:
		return f"HTTP {response.status_code} - {response.text[:100]}"
	return body.get("error_description") or body.get("error") or f"HTTP {response.status_code}"


class Authenticator:
	"""Base class: one variant per authentication method."""

	def __init__(self, tenant_id: str, client_id: str) -> None:
		if not tenant_id or not client_id:
			raise ConfigError("auth.tenant_id and auth.client_id are required")
		self._tenant_id = tenant_id
		self._client_id = client_id

	@property
	def token_url(self) -> str:
		return f"{AUTHORITY}/{self._tenant_id}/oauth2/v2.0/token"

	def authenticate(self) -> Session:
		raise NotImplementedError


class ServicePrincipalSecret(Authenticator):
	"""Client-credentials flow for an app registration with a secret."""

	def __init__(self, tenant_id: str, client_id: str, client_secret: str) -> None:
		super().__init__(tenant_id, client_id)
		if not client_secret:
			raise AuthenticationError("Client secret is empty")
		self._client_secret = client_secret

	def authenticate(self) -> Session:
		response = _post_form(self.token_url, {
			"grant_type": "client_credentials",
			"client_id": self._client_id,
			"client_secret": self._client_secret,
			"scope": GRAPH_SCOPE,
		})
		if response.status_code != 200:
			raise AuthenticationError(f"Client credential sign-in failed: {_error_message(response)}")
		logger.info("Authenticated as service principal %s", self._client_id)
		return _session_from_token_response(response.json())


class InteractiveUser(Authenticator):
	"""Device-code flow: the analyst completes sign-in in a browser."""

	def __init__(self, tenant_id: str, client_id: str, prompt: Optional[Callable[[str], None]] = None,
			sleep: Callable[[float], None] = time.sleep) -> None:
		super().__init__(tenant_id, client_id)
		self._prompt = prompt or print
		self._sleep = sleep

	@property
	def device_code_url(self) -> str:
		return f"{AUTHORITY}/{self._tenant_id}/oauth2/v2.0/devicecode"

	def authenticate(self) -> Session:
		response = _post_form(self.device_code_url, {
			"client_id": self._client_id,
			"scope": DELEGATED_SCOPE,
		})
		if response.status_code != 200:
			raise AuthenticationError(f"Device code request failed: {_error_message(response)}")

		flow = response.json()
		self._prompt(flow.get("message", f"Open {flow.get('verification_uri')} and enter {flow.get('user_code')}"))

		interval = int(flow.get("interval", 5))
		deadline = time.time() + int(flow.get("expires_in", 900))
		while time.time() < deadline:
			self._sleep(interval)
			poll = _post_form(self.token_url, {
				"grant_type": "urn:ietf:params:oauth:grant-type:device_code",
				"client_id": self._client_id,
				"device_code": flow.get("device_code", ""),
			})
			if poll.status_code == 200:
				logger.info("Interactive sign-in completed")
				return _session_from_token_response(poll.json())

			try:
				error = poll.json().get("error", "")
			except ValueError:
				error = ""
			if error == "authorization_pending":
				continue
			if error == "slow_down":
				interval += 5
				continue
			raise AuthenticationError(f"Interactive sign-in failed: {_error_message(poll)}")

		raise AuthenticationError("Interactive sign-in timed out")


class ServicePrincipalCertificate(Authenticator):
	"""Certificate-based client credentials (not supported yet)."""

	def authenticate(self) -> Session:
		raise NotImplementedError("Certificate authentication is not implemented")


def build_authenticator(auth_config: Dict[str, Any]) -> Authenticator:
	"""
	Select the authenticator variant described by the auth config block.

	Raises:
		ConfigError: Unknown method or missing tenant/client id
		AuthenticationError: Secret method without a secret in the environment
	"""
	method = str(auth_config.get("method", "interactive")).strip().lower()
	tenant_id = auth_config.get("tenant_id", "") or ""
	client_id = auth_config.get("client_id", "") or ""

	if method == "interactive":
		return InteractiveUser(tenant_id, client_id)
	if method == "secret":
		env_name = auth_config.get("client_secret_env", "HUNT_CLIENT_SECRET")
		secret = os.environ.get(env_name, "")
		if not secret:
			raise AuthenticationError(f"Environment variable {env_name} is not set")
		return ServicePrincipalSecret(tenant_id, client_id, secret)
	if method == "certificate":
		return ServicePrincipalCertificate(tenant_id, client_id)
	raise ConfigError(f"Unknown auth method: {method}")
