"""Typed views of custom resource events and responses."""

import enum
import hashlib
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import SplitResult, urlsplit

from errors import InvalidRequest

PHYSICAL_ID_PREFIX = "repo-import-"

# codecommit://[profile@]repo or codecommit::<region>://[profile@]repo
_CODECOMMIT_URL = re.compile(r"^codecommit:(:[a-z0-9-]+:)?//([\w.-]+@)?[\w.-]+$")
_INVALID_REF_CHARS = re.compile(r"[\x00-\x20\x7f~^:?*\[\\]")


class RequestType(str, enum.Enum):
  CREATE = "Create"
  UPDATE = "Update"
  DELETE = "Delete"


class Status(str, enum.Enum):
  SUCCESS = "SUCCESS"
  FAILED = "FAILED"


class Mode(enum.Enum):
  """How the mirror job treats an already populated target."""

  FULL = "full"
  RECONCILE = "reconcile"


def is_valid_branch_name(name: str) -> bool:
  """Apply the subset of ``git check-ref-format --branch`` rules we rely on."""
  if not name or name.startswith(("-", "/")) or name.endswith(("/", ".", ".lock")):
    return False
  if ".." in name or "@{" in name or "//" in name or name == "@":
    return False
  if _INVALID_REF_CHARS.search(name):
    return False
  return not any(part.startswith(".") for part in name.split("/"))


def _parse_bool(value: Any, name: str) -> bool:
  if isinstance(value, bool):
    return value
  text = str(value).strip().lower()
  if text in ("true", "1", "yes"):
    return True
  if text in ("false", "0", "no"):
    return False
  raise InvalidRequest(f"{name} must be 'true' or 'false', got {value!r}")


def _require(props: dict[str, Any], name: str) -> str:
  value = props.get(name)
  if value is None:
    raise InvalidRequest(f"Missing required property {name}")
  if not isinstance(value, str) or not value.strip():
    raise InvalidRequest(f"Property {name} must be a non-empty string")
  return value.strip()


def _split_https(url: str, name: str) -> SplitResult | None:
  """Split an https URL, or return None when it is not one."""
  try:
    parts = urlsplit(url)
    parts.port
  except ValueError as e:
    raise InvalidRequest(f"{name} is not a valid URL: {e}") from e
  if parts.scheme != "https" or not parts.hostname:
    return None
  return parts


@dataclass(frozen=True)
class ImportRequest:
  """One source branch to copy into one target branch."""

  source_repo: str
  source_branch: str
  target_repo: str
  target_branch: str
  force_push: bool = True
  source_token_secret: str | None = None

  @classmethod
  def from_properties(cls, props: dict[str, Any] | None) -> "ImportRequest":
    """Validate ``ResourceProperties`` and build a request.

    Raises InvalidRequest with a message naming the offending property.
    """
    if not isinstance(props, dict):
      raise InvalidRequest("ResourceProperties must be an object")

    source_repo = _require(props, "SourceRepo")
    source_branch = _require(props, "SourceBranch")
    target_repo = _require(props, "TargetRepo")
    target_branch = _require(props, "TargetBranch")

    if _split_https(source_repo, "SourceRepo") is None:
      raise InvalidRequest("SourceRepo must be an https:// URL")
    if not _CODECOMMIT_URL.match(target_repo):
      target = _split_https(target_repo, "TargetRepo")
      if target is None:
        raise InvalidRequest(
          "TargetRepo must be a codecommit:: or https:// URL"
        )
      if target.username or target.password:
        raise InvalidRequest("TargetRepo must not embed credentials")

    for name, branch in (
      ("SourceBranch", source_branch),
      ("TargetBranch", target_branch),
    ):
      if not is_valid_branch_name(branch):
        raise InvalidRequest(f"{name} is not a valid branch name")

    secret = props.get("SourceTokenSecret") or None
    if secret is not None and not isinstance(secret, str):
      raise InvalidRequest("SourceTokenSecret must be a string")

    return cls(
      source_repo=source_repo,
      source_branch=source_branch,
      target_repo=target_repo,
      target_branch=target_branch,
      force_push=_parse_bool(props.get("ForcePush", True), "ForcePush"),
      source_token_secret=secret,
    )

  @property
  def physical_id(self) -> str:
    return physical_id_for(self.target_repo, self.target_branch)


def physical_id_for(target_repo: str, target_branch: str) -> str:
  """Stable id for a target branch, identical across Create and Update."""
  digest = hashlib.sha256(f"{target_repo}#{target_branch}".encode()).hexdigest()
  return f"{PHYSICAL_ID_PREFIX}{digest[:20]}"


@dataclass(frozen=True)
class CommitRef:
  """Head of the target branch after a run."""

  commit_id: str
  branch: str
  transferred: bool

  def as_data(self) -> dict[str, str]:
    return {
      "CommitId": self.commit_id,
      "TargetBranch": self.branch,
      "Transferred": "true" if self.transferred else "false",
    }


@dataclass(frozen=True)
class LifecycleEvent:
  """The parts of a CloudFormation custom resource event we use."""

  request_type: str
  properties: dict[str, Any]
  response_url: str
  stack_id: str
  request_id: str
  logical_resource_id: str
  physical_resource_id: str | None = None
  old_properties: dict[str, Any] = field(default_factory=dict)

  @classmethod
  def from_dict(cls, event: dict[str, Any]) -> "LifecycleEvent":
    return cls(
      request_type=str(event.get("RequestType", "")),
      properties=event.get("ResourceProperties") or {},
      response_url=event.get("ResponseURL", ""),
      stack_id=event.get("StackId", ""),
      request_id=event.get("RequestId", ""),
      logical_resource_id=event.get("LogicalResourceId", ""),
      physical_resource_id=event.get("PhysicalResourceId") or None,
      old_properties=event.get("OldResourceProperties") or {},
    )


@dataclass
class CompletionSignal:
  """Terminal answer for one lifecycle event."""

  status: Status
  physical_resource_id: str
  reason: str | None = None
  data: dict[str, str] = field(default_factory=dict)
  no_echo: bool = False

  @classmethod
  def success(
    cls, physical_resource_id: str, data: dict[str, str] | None = None
  ) -> "CompletionSignal":
    return cls(Status.SUCCESS, physical_resource_id, data=data or {})

  @classmethod
  def failed(cls, physical_resource_id: str, reason: str) -> "CompletionSignal":
    return cls(Status.FAILED, physical_resource_id, reason=reason)
