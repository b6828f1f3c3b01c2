"""Maps custom resource lifecycle events onto mirror job runs."""

import dataclasses
from pathlib import Path
from typing import Any, Callable

from aws_lambda_powertools import Logger

from credentials import CredentialResolver, fetch_secret_token, redact, split_userinfo
from errors import InvalidRequest, RepoImportError
from events import (
  CommitRef,
  CompletionSignal,
  ImportRequest,
  LifecycleEvent,
  Mode,
  RequestType,
  physical_id_for,
)
from git_client import Deadline, GitClient
from mirror import MirrorJob
from reporter import CompletionReporter, Invocation

logger = Logger(child=True)

GitClientFactory = Callable[[CredentialResolver, Deadline], Any]


class EventHandler:
  """Answers Create, Update and Delete events for ``Custom::RepoImportJob``.

  Create runs a full import, Update reconciles, Delete leaves the target
  repository in place and never contacts the source.
  """

  def __init__(
    self,
    reporter: CompletionReporter | None = None,
    git_factory: GitClientFactory | None = None,
    token_reader: Callable[[str], str] = fetch_secret_token,
    workspace_root: Path | str = "/tmp",
    timeout_reserve_seconds: float = 15.0,
  ) -> None:
    self._reporter = reporter or CompletionReporter()
    self._git_factory = git_factory or (
      lambda credentials, deadline: GitClient(credentials, deadline=deadline)
    )
    self._token_reader = token_reader
    self._workspace_root = Path(workspace_root)
    self._reserve = timeout_reserve_seconds

  def handle(self, raw_event: dict[str, Any], context: Any) -> CompletionSignal:
    event = LifecycleEvent.from_dict(raw_event)
    logger.info("Received lifecycle event")

    with self._reporter.completion(event, context) as invocation:
      try:
        self._dispatch(event, invocation, context)
      except RepoImportError as e:
        logger.error(
          "Import failed",
          extra={"error": type(e).__name__, "reason": e.reason, "retryable": e.retryable},
        )
        invocation.fail(str(e))
    return invocation.signal

  def _dispatch(self, event: LifecycleEvent, invocation: Invocation, context: Any) -> None:
    if event.request_type == RequestType.DELETE.value:
      self._delete(event, invocation)
    elif event.request_type == RequestType.CREATE.value:
      self._create(event, invocation, context)
    elif event.request_type == RequestType.UPDATE.value:
      self._update(event, invocation, context)
    else:
      raise InvalidRequest(f"Unsupported RequestType {event.request_type!r}")

  def _delete(self, event: LifecycleEvent, invocation: Invocation) -> None:
    # The target may be consumed by other resources, so it is left as is.
    logger.info(
      "Delete leaves the target repository in place",
      extra={"physical_resource_id": invocation.physical_id},
    )
    invocation.succeed()

  def _create(self, event: LifecycleEvent, invocation: Invocation, context: Any) -> None:
    request = ImportRequest.from_properties(event.properties)
    invocation.physical_id = request.physical_id
    commit = self._run(request, Mode.FULL, context)
    invocation.succeed(request.physical_id, commit.as_data())

  def _update(self, event: LifecycleEvent, invocation: Invocation, context: Any) -> None:
    request = ImportRequest.from_properties(event.properties)
    physical_id = event.physical_resource_id or request.physical_id
    if event.physical_resource_id and self._target_changed(event, request):
      # A new id makes CloudFormation replace the resource and delete the old one.
      physical_id = request.physical_id
      logger.info(
        "Target changed, replacing resource",
        extra={"old_id": event.physical_resource_id, "new_id": physical_id},
      )
    invocation.physical_id = physical_id
    commit = self._run(request, Mode.RECONCILE, context)
    invocation.succeed(physical_id, commit.as_data())

  @staticmethod
  def _target_changed(event: LifecycleEvent, request: ImportRequest) -> bool:
    old = event.old_properties
    if not old.get("TargetRepo") or not old.get("TargetBranch"):
      return False
    return physical_id_for(old["TargetRepo"], old["TargetBranch"]) != request.physical_id

  def _run(self, request: ImportRequest, mode: Mode, context: Any) -> CommitRef:
    source_repo, embedded_token = split_userinfo(request.source_repo)
    request = dataclasses.replace(request, source_repo=source_repo)
    token = embedded_token
    if request.source_token_secret:
      token = self._token_reader(request.source_token_secret)

    credentials = CredentialResolver(source_repo, token)
    logger.info(
      "Starting import",
      extra={
        "mode": mode.value,
        "source": redact(source_repo),
        "source_branch": request.source_branch,
        "target": request.target_repo,
        "target_branch": request.target_branch,
        "force_push": request.force_push,
        "source_credentials": credentials.for_url(source_repo).name,
      },
    )
    git = self._git_factory(credentials, Deadline.from_context(context, self._reserve))
    return MirrorJob(git, self._workspace_root).run(request, mode)
