"""Lambda entry point for ``Custom::RepoImportJob``.

CloudFormation invokes this function directly (the custom resource's service
token is the function ARN), so the function itself answers the presigned
ResponseURL for every event.
"""

import os
from typing import Any

from aws_lambda_powertools import Logger
from aws_lambda_powertools.utilities.typing import LambdaContext

from lifecycle import EventHandler

logger = Logger(
  service=os.getenv("POWERTOOLS_SERVICE_NAME", "repo-import"),
  level=os.getenv("LOG_LEVEL", "INFO").upper(),
)

event_handler = EventHandler(
  workspace_root=os.getenv("WORKSPACE_ROOT", "/tmp"),
  timeout_reserve_seconds=float(os.getenv("GIT_TIMEOUT_RESERVE_SECONDS", "15")),
)


# The event is not logged: ResponseURL is a presigned, writable URL.
@logger.inject_lambda_context(log_event=False, clear_state=True)
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
  logger.append_keys(
    request_type=event.get("RequestType"),
    logical_resource_id=event.get("LogicalResourceId"),
    stack_id=event.get("StackId"),
  )
  signal = event_handler.handle(event, context)
  return {
    "Status": signal.status.value,
    "PhysicalResourceId": signal.physical_resource_id,
  }
