"""Mirror job engine: copy one source branch into one target branch."""

import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from aws_lambda_powertools import Logger

from errors import SourceNotFound, TransferVerificationFailure
from events import CommitRef, ImportRequest, Mode

logger = Logger(child=True)

WORKSPACE_PREFIX = "repo-import-"


class GitOperations(Protocol):
  def head_commit(self, url: str, branch: str) -> str | None: ...

  def clone(self, url: str, branch: str, dest_dir: Path) -> str: ...

  def push(self, dest_dir: Path, target_url: str, branch: str, force: bool) -> None: ...


def purge_stale_workspaces(root: Path) -> int:
  """Remove workspaces left behind by an invocation that never reached cleanup.

  A Lambda sandbox runs one invocation at a time, so anything matching the
  prefix at the start of a run is stale.
  """
  removed = 0
  for path in root.glob(f"{WORKSPACE_PREFIX}*"):
    if path.is_dir() and not path.is_symlink():
      shutil.rmtree(path, ignore_errors=True)
    else:
      path.unlink(missing_ok=True)
    removed += 1
  if removed:
    logger.info("Removed stale workspaces", extra={"count": removed})
  return removed


@contextmanager
def workspace(root: Path) -> Iterator[Path]:
  """Private working directory, removed on every exit path."""
  root.mkdir(parents=True, exist_ok=True)
  with tempfile.TemporaryDirectory(prefix=WORKSPACE_PREFIX, dir=root) as path:
    yield Path(path)


class MirrorJob:
  """One import attempt.

  Full mode always clones and pushes. Reconcile mode first compares the two
  branch heads and returns without transferring anything when they match.
  """

  def __init__(self, git: GitOperations, workspace_root: Path | str = "/tmp") -> None:
    self._git = git
    self._root = Path(workspace_root)

  def run(self, request: ImportRequest, mode: Mode) -> CommitRef:
    purge_stale_workspaces(self._root)

    source_head = self._git.head_commit(request.source_repo, request.source_branch)
    if source_head is None:
      raise SourceNotFound(
        f"Branch {request.source_branch} does not exist in the source repository"
      )
    logger.info(
      "Resolved source head",
      extra={"branch": request.source_branch, "commit": source_head, "mode": mode.value},
    )

    if mode is Mode.RECONCILE:
      target_head = self._git.head_commit(request.target_repo, request.target_branch)
      if target_head == source_head:
        logger.info(
          "Target already matches source, skipping transfer",
          extra={"branch": request.target_branch, "commit": target_head},
        )
        return CommitRef(source_head, request.target_branch, transferred=False)
      logger.info(
        "Target differs from source",
        extra={"target_commit": target_head, "source_commit": source_head},
      )

    with workspace(self._root) as path:
      clone_dir = path / "source.git"
      pushed_head = self._git.clone(
        request.source_repo, request.source_branch, clone_dir
      )
      if pushed_head != source_head:
        logger.info(
          "Source branch moved since lookup",
          extra={"looked_up": source_head, "cloned": pushed_head},
        )
      self._git.push(
        clone_dir, request.target_repo, request.target_branch, request.force_push
      )

    target_head = self._git.head_commit(request.target_repo, request.target_branch)
    if target_head != pushed_head:
      raise TransferVerificationFailure(
        f"Target branch {request.target_branch} is at {target_head or 'nothing'} "
        f"after pushing {pushed_head}"
      )

    logger.info(
      "Imported branch",
      extra={"branch": request.target_branch, "commit": pushed_head},
    )
    return CommitRef(pushed_head, request.target_branch, transferred=True)
