"""Per-endpoint credential injection for git subprocesses."""

import base64
import json
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit, urlunsplit

import boto3
from botocore.exceptions import ClientError

from errors import AuthenticationFailure, InternalError

_USERINFO = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s]+@", re.IGNORECASE)
REDACTED = "***"


def redact(text: str, secrets: list[str] | tuple[str, ...] = ()) -> str:
  """Strip URL userinfo and any known secret values from ``text``."""
  text = _USERINFO.sub(rf"\g<scheme>{REDACTED}@", text)
  for secret in secrets:
    if secret:
      text = text.replace(secret, REDACTED)
  return text


def split_userinfo(url: str) -> tuple[str, str | None]:
  """Return ``url`` without credentials and the password/token it carried."""
  parts = urlsplit(url)
  if not parts.username and not parts.password:
    return url, None
  netloc = parts.hostname or ""
  if parts.port:
    netloc = f"{netloc}:{parts.port}"
  clean = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
  return clean, parts.password or parts.username


def _config_env(pairs: list[tuple[str, str]]) -> dict[str, str]:
  # GIT_CONFIG_COUNT keeps values off the command line and out of .git/config.
  env = {"GIT_CONFIG_COUNT": str(len(pairs))}
  for i, (key, value) in enumerate(pairs):
    env[f"GIT_CONFIG_KEY_{i}"] = key
    env[f"GIT_CONFIG_VALUE_{i}"] = value
  return env


class CredentialStrategy:
  """Supplies environment variables that authenticate one git command."""

  name = "anonymous"

  def git_env(self) -> dict[str, str]:
    return {}

  def secrets(self) -> tuple[str, ...]:
    return ()


class AnonymousHttps(CredentialStrategy):
  """Public HTTPS endpoint."""


@dataclass
class TokenHttps(CredentialStrategy):
  """HTTPS endpoint authenticated with a bearer-style token.

  The token is sent as basic auth through ``http.extraHeader``.
  """

  token: str
  username: str = "x-access-token"
  name: str = field(default="token", init=False)

  def git_env(self) -> dict[str, str]:
    encoded = base64.b64encode(f"{self.username}:{self.token}".encode()).decode()
    return _config_env([("http.extraHeader", f"Authorization: Basic {encoded}")])

  def secrets(self) -> tuple[str, ...]:
    encoded = base64.b64encode(f"{self.username}:{self.token}".encode()).decode()
    return (self.token, encoded)


class CodeCommitHelper(CredentialStrategy):
  """``codecommit::`` URLs, signed by git-remote-codecommit with the role's keys."""

  name = "codecommit"


def fetch_secret_token(secret_id: str, secrets_client=None) -> str:
  """Read a source token from Secrets Manager.

  Plain string secrets are used as-is; JSON secrets must carry a ``token`` key.
  """
  client = secrets_client or boto3.client("secretsmanager")
  try:
    response = client.get_secret_value(SecretId=secret_id)
  except ClientError as e:
    code = e.response.get("Error", {}).get("Code", "Unknown")
    if code in ("AccessDeniedException", "ResourceNotFoundException"):
      raise AuthenticationFailure(
        f"Source token secret is not readable ({code})"
      ) from e
    raise InternalError(f"Could not read source token secret ({code})") from e

  value = response.get("SecretString") or ""
  if value.lstrip().startswith("{"):
    try:
      value = json.loads(value).get("token", "")
    except ValueError as e:
      raise InternalError("Source token secret is not valid JSON") from e
  if not value:
    raise AuthenticationFailure("Source token secret is empty")
  return str(value)


class CredentialResolver:
  """Selects a credential strategy for each URL a job touches.

  A token only ever goes to the host it was issued for.
  """

  def __init__(self, source_url: str, source_token: str | None = None) -> None:
    self._source_url = source_url
    self._source_host = (urlsplit(source_url).hostname or "").lower()
    self._source_token = source_token

  def for_url(self, url: str) -> CredentialStrategy:
    if url.startswith("codecommit:"):
      return CodeCommitHelper()
    host = (urlsplit(url).hostname or "").lower()
    if self._source_token and host == self._source_host:
      return TokenHttps(self._source_token)
    return AnonymousHttps()

  def is_source(self, url: str) -> bool:
    return url == self._source_url

  def secrets(self) -> tuple[str, ...]:
    if not self._source_token:
      return ()
    return TokenHttps(self._source_token).secrets()
