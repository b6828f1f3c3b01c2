"""Delivers the single terminal response for a custom resource event."""

import enum
import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import urllib3
from aws_lambda_powertools import Logger

from credentials import redact
from errors import CompletionDeliveryError
from events import CompletionSignal, LifecycleEvent

logger = Logger(child=True)

# CloudFormation rejects response documents larger than this
MAX_RESPONSE_BYTES = 4096


class InvocationState(enum.Enum):
  PENDING = "pending"
  RUNNING = "running"
  SUCCEEDED = "succeeded"
  FAILED = "failed"


TERMINAL_STATES = (InvocationState.SUCCEEDED, InvocationState.FAILED)


class Invocation:
  """Tracks one event from receipt to its terminal outcome.

  PENDING -> RUNNING -> SUCCEEDED | FAILED. A terminal state is final.
  """

  def __init__(self, event: LifecycleEvent, fallback_physical_id: str) -> None:
    self.event = event
    self.state = InvocationState.PENDING
    self.physical_id = event.physical_resource_id or fallback_physical_id
    self.signal: CompletionSignal | None = None

  @property
  def is_terminal(self) -> bool:
    return self.state in TERMINAL_STATES

  def start(self) -> None:
    if self.state is not InvocationState.PENDING:
      raise RuntimeError(f"Cannot start an invocation that is {self.state.value}")
    self.state = InvocationState.RUNNING

  def succeed(
    self, physical_id: str | None = None, data: dict[str, str] | None = None
  ) -> CompletionSignal:
    self._finish(InvocationState.SUCCEEDED)
    self.physical_id = physical_id or self.physical_id
    self.signal = CompletionSignal.success(self.physical_id, data)
    return self.signal

  def fail(self, reason: str, physical_id: str | None = None) -> CompletionSignal:
    self._finish(InvocationState.FAILED)
    self.physical_id = physical_id or self.physical_id
    self.signal = CompletionSignal.failed(self.physical_id, reason)
    return self.signal

  def _finish(self, state: InvocationState) -> None:
    if self.state is not InvocationState.RUNNING:
      raise RuntimeError(
        f"Cannot move an invocation from {self.state.value} to {state.value}"
      )
    self.state = state


class CompletionReporter:
  """Sends the response document to the presigned ``ResponseURL``."""

  def __init__(
    self,
    http: urllib3.PoolManager | None = None,
    retries: int = 3,
    timeout_seconds: float = 10.0,
  ) -> None:
    self._http = http or urllib3.PoolManager()
    self._retries = urllib3.Retry(
      total=retries,
      backoff_factor=0.5,
      status_forcelist=(500, 502, 503, 504),
    )
    self._timeout = urllib3.Timeout(connect=5.0, read=timeout_seconds)

  @contextmanager
  def completion(self, event: LifecycleEvent, context: Any) -> Iterator[Invocation]:
    """Run the body and report its outcome exactly once, whatever happens."""
    log_stream = getattr(context, "log_stream_name", "") or "unknown"
    invocation = Invocation(event, fallback_physical_id=log_stream)
    invocation.start()
    try:
      yield invocation
    except Exception as e:
      logger.exception("Unexpected error while handling event")
      if not invocation.is_terminal:
        invocation.fail(f"InternalError: {type(e).__name__}: {e}")
    finally:
      if not invocation.is_terminal:
        invocation.fail("InternalError: handler ended without an outcome")
      self.report(event, invocation.signal, log_stream)

  def response_body(
    self, event: LifecycleEvent, signal: CompletionSignal, log_stream: str
  ) -> dict[str, Any]:
    reason = signal.reason or f"See the details in CloudWatch Log Stream: {log_stream}"
    body = {
      "Status": signal.status.value,
      "Reason": redact(reason),
      "PhysicalResourceId": signal.physical_resource_id,
      "StackId": event.stack_id,
      "RequestId": event.request_id,
      "LogicalResourceId": event.logical_resource_id,
      "NoEcho": signal.no_echo,
      "Data": signal.data,
    }
    overflow = len(json.dumps(body).encode()) - MAX_RESPONSE_BYTES
    if overflow > 0:
      body["Reason"] = body["Reason"][: max(0, len(body["Reason"]) - overflow - 3)] + "..."
    return body

  def report(
    self, event: LifecycleEvent, signal: CompletionSignal, log_stream: str = ""
  ) -> None:
    """PUT the response document. Raises CompletionDeliveryError on failure."""
    body = json.dumps(self.response_body(event, signal, log_stream)).encode()
    logger.info(
      "Sending response",
      extra={
        "status": signal.status.value,
        "physical_resource_id": signal.physical_resource_id,
        "reason": redact(signal.reason or ""),
      },
    )
    if not event.response_url:
      raise CompletionDeliveryError("Event has no ResponseURL")
    try:
      response = self._http.request(
        "PUT",
        event.response_url,
        body=body,
        headers={"content-type": "", "content-length": str(len(body))},
        retries=self._retries,
        timeout=self._timeout,
      )
    except urllib3.exceptions.HTTPError as e:
      logger.exception("Could not deliver response")
      raise CompletionDeliveryError(f"Could not deliver response: {e}") from e

    if response.status >= 300:
      logger.error("Response rejected", extra={"http_status": response.status})
      raise CompletionDeliveryError(f"Response rejected with HTTP {response.status}")
    logger.info("Response delivered", extra={"http_status": response.status})
