"""Error taxonomy for repository import jobs."""


class RepoImportError(Exception):
  """Base class for failures that end an import with a FAILED response.

  ``reason`` must already be safe to show to CloudFormation: no credentials
  and no URLs carrying tokens.
  """

  retryable = False

  def __init__(self, reason: str) -> None:
    super().__init__(reason)
    self.reason = reason

  def __str__(self) -> str:
    return f"{type(self).__name__}: {self.reason}"


class InvalidRequest(RepoImportError):
  """The event is missing properties or carries malformed values."""


class AuthenticationFailure(RepoImportError):
  """An endpoint rejected the credentials it was given."""


class NetworkFailure(RepoImportError):
  """Transient transport error."""

  retryable = True


class SourceNotFound(RepoImportError):
  """The source repository or branch does not exist."""


class TargetUnreachable(RepoImportError):
  """The target repository endpoint is missing or misconfigured."""


class TransferVerificationFailure(RepoImportError):
  """The target branch head does not match what was pushed."""

  retryable = True


class PushRejected(TransferVerificationFailure):
  """The target refused the push, its branch is unchanged."""


class Timeout(RepoImportError):
  """The invocation ran out of its time budget."""

  retryable = True


class InternalError(RepoImportError):
  """Unexpected fault."""


class CompletionDeliveryError(Exception):
  """The response could not be delivered to CloudFormation."""
