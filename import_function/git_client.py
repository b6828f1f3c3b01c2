"""Thin wrapper around the bundled git binary."""

import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from aws_lambda_powertools import Logger

from credentials import CredentialResolver, redact
from errors import (
  AuthenticationFailure,
  InternalError,
  NetworkFailure,
  PushRejected,
  RepoImportError,
  SourceNotFound,
  TargetUnreachable,
  Timeout,
)

logger = Logger(child=True)

# ls-remote --exit-code returns 2 when no ref matched
LS_REMOTE_NO_MATCH = 2

_NOT_FOUND_MARKERS = (
  "repository not found",
  "does not appear to be a git repository",
  "returned error: 404",
  "couldn't find remote ref",
  "not found in upstream",
  "repositorydoesnotexist",
)
_AUTH_MARKERS = (
  "authentication failed",
  "could not read username",
  "could not read password",
  "returned error: 401",
  "returned error: 403",
  "invalid username or password",
  "access denied",
  "accessdenied",
  "not authorized",
  "permission denied",
  "unable to locate credentials",
  "expiredtoken",
)
_NETWORK_MARKERS = (
  "could not resolve host",
  "temporary failure in name resolution",
  "failed to connect",
  "connection timed out",
  "connection reset",
  "operation timed out",
  "early eof",
  "rpc failed",
  "remote end hung up",
  "ssl_error",
  "gnutls",
  "returned error: 50",
)
_REJECTED_MARKERS = (
  "[rejected]",
  "[remote rejected]",
  "non-fast-forward",
  "failed to push some refs",
)


class Deadline:
  """Time left for git commands, keeping a reserve to answer CloudFormation."""

  def __init__(
    self,
    remaining_ms: Callable[[], int] | None = None,
    reserve_seconds: float = 0.0,
  ) -> None:
    self._remaining_ms = remaining_ms
    self._reserve = reserve_seconds

  @classmethod
  def from_context(cls, context: Any, reserve_seconds: float) -> "Deadline":
    getter = getattr(context, "get_remaining_time_in_millis", None)
    return cls(getter, reserve_seconds)

  def remaining(self) -> float | None:
    """Seconds available, or None when unbounded."""
    if self._remaining_ms is None:
      return None
    return self._remaining_ms() / 1000.0 - self._reserve


@dataclass
class GitEnvironment:
  """Process environment for the git binary bundled under ``local/``."""

  task_root: Path
  home: str = "/tmp"
  base_env: dict[str, str] = field(default_factory=lambda: dict(os.environ))

  @classmethod
  def from_env(cls) -> "GitEnvironment":
    task_root = os.environ.get("LAMBDA_TASK_ROOT", str(Path(__file__).parent))
    return cls(task_root=Path(task_root))

  @property
  def bin_dir(self) -> Path:
    return self.task_root / "local" / "bin"

  @property
  def lib_dir(self) -> Path:
    return self.task_root / "local" / "lib"

  def build(self, extra: dict[str, str] | None = None) -> dict[str, str]:
    env = {
      k: v
      for k, v in self.base_env.items()
      if not k.startswith("GIT_CONFIG_") and k != "GIT_ASKPASS"
    }
    env.update(
      {
        "HOME": self.home,
        "GIT_TERMINAL_PROMPT": "0",
        "GIT_CONFIG_NOSYSTEM": "1",
      }
    )

    paths = [str(self.task_root / "bin"), env.get("PATH", "/usr/bin:/bin")]
    if self.bin_dir.is_dir():
      paths.insert(0, str(self.bin_dir))
      env["GIT_EXEC_PATH"] = str(self.bin_dir)
      env["LD_LIBRARY_PATH"] = os.pathsep.join(
        p for p in (str(self.lib_dir), env.get("LD_LIBRARY_PATH")) if p
      )
    env["PATH"] = os.pathsep.join(paths)
    # git-remote-codecommit is installed into the task root
    env["PYTHONPATH"] = os.pathsep.join(
      p for p in (str(self.task_root), env.get("PYTHONPATH")) if p
    )

    env.update(extra or {})
    return env


def _detail(stderr: str, secrets: tuple[str, ...]) -> str:
  lines = [line.strip() for line in redact(stderr, secrets).splitlines()]
  lines = [line for line in lines if line]
  if not lines:
    return "no output"
  return lines[-1][:200]


class GitClient:
  """Runs clone, push and head lookups with per-endpoint credentials.

  Every failure leaves as a RepoImportError whose reason has been redacted.
  """

  def __init__(
    self,
    credentials: CredentialResolver,
    environment: GitEnvironment | None = None,
    deadline: Deadline | None = None,
  ) -> None:
    self._credentials = credentials
    self._environment = environment or GitEnvironment.from_env()
    self._deadline = deadline or Deadline()

  def head_commit(self, url: str, branch: str) -> str | None:
    """Commit id at the head of ``branch``, or None if the branch is absent."""
    result = self._run(
      ["ls-remote", "--exit-code", "--heads", url, f"refs/heads/{branch}"],
      url=url,
      operation="read",
      ok_codes=(0, LS_REMOTE_NO_MATCH),
    )
    if result.returncode == LS_REMOTE_NO_MATCH:
      return None
    for line in result.stdout.splitlines():
      sha, _, ref = line.partition("\t")
      if ref.strip() == f"refs/heads/{branch}":
        return sha.strip()
    return None

  def clone(self, url: str, branch: str, dest_dir: Path | str) -> str:
    """Clone only ``branch`` into a bare repository and return its head."""
    self._run(
      [
        "clone",
        "--bare",
        "--single-branch",
        "--no-tags",
        "--branch",
        branch,
        url,
        str(dest_dir),
      ],
      url=url,
      operation="clone",
    )
    result = self._run(
      ["rev-parse", "HEAD"], url=url, operation="inspect", cwd=dest_dir
    )
    return result.stdout.strip()

  def push(
    self, dest_dir: Path | str, target_url: str, branch: str, force: bool
  ) -> None:
    """Push the cloned head to ``branch`` on the target, creating it if absent."""
    args = ["push"]
    if force:
      args.append("--force")
    args += [target_url, f"HEAD:refs/heads/{branch}"]
    self._run(args, url=target_url, operation="push", cwd=dest_dir)

  def _run(
    self,
    args: list[str],
    *,
    url: str,
    operation: str,
    cwd: Path | str | None = None,
    ok_codes: tuple[int, ...] = (0,),
  ) -> subprocess.CompletedProcess:
    strategy = self._credentials.for_url(url)
    secrets = self._credentials.secrets()
    env = self._environment.build(strategy.git_env())

    timeout = self._deadline.remaining()
    if timeout is not None and timeout <= 0:
      raise Timeout(f"No time left to {operation} {self._role(url)} repository")

    logger.debug(
      "Running git",
      extra={
        "command": redact(" ".join(args), secrets),
        "credentials": strategy.name,
        "timeout": timeout,
      },
    )
    started = time.monotonic()
    try:
      result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=env,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
      )
    except subprocess.TimeoutExpired as e:
      raise Timeout(
        f"git {args[0]} against {self._role(url)} repository did not finish in time"
      ) from e
    except OSError as e:
      raise InternalError(f"Could not start git: {e.strerror or e}") from e

    logger.debug(
      "git finished",
      extra={
        "subcommand": args[0],
        "returncode": result.returncode,
        "seconds": round(time.monotonic() - started, 2),
      },
    )
    if result.returncode not in ok_codes:
      raise self.translate(result.returncode, result.stderr, url, operation)
    return result

  def _role(self, url: str) -> str:
    return "source" if self._credentials.is_source(url) else "target"

  def translate(
    self, returncode: int, stderr: str, url: str, operation: str
  ) -> RepoImportError:
    """Map a failed git command onto the import error taxonomy."""
    secrets = self._credentials.secrets()
    detail = _detail(stderr, secrets)
    role = self._role(url)
    text = stderr.lower()
    logger.warning(
      "git command failed",
      extra={
        "operation": operation,
        "endpoint": role,
        "returncode": returncode,
        "stderr": redact(stderr, secrets)[-2000:],
      },
    )

    if any(marker in text for marker in _NOT_FOUND_MARKERS):
      if role == "source":
        return SourceNotFound(f"Source repository or branch not found: {detail}")
      return TargetUnreachable(f"Target repository not found: {detail}")
    if any(marker in text for marker in _AUTH_MARKERS):
      return AuthenticationFailure(f"The {role} repository rejected credentials: {detail}")
    if any(marker in text for marker in _NETWORK_MARKERS):
      return NetworkFailure(f"Network error during {operation} ({role}): {detail}")
    if operation == "push" and any(marker in text for marker in _REJECTED_MARKERS):
      return PushRejected(f"Target refused the push: {detail}")
    return InternalError(f"git {operation} failed with exit code {returncode}: {detail}")
