"""CodeCommit repository that can import a branch from an external Git URL."""

from pathlib import Path
from typing import Any

from aws_cdk import BundlingOptions, CustomResource, Duration, Size
from aws_cdk import aws_codecommit as codecommit
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_logs as logs
from aws_cdk import aws_secretsmanager as secretsmanager
from constructs import Construct

FUNCTION_DIR = Path(__file__).parent.parent.parent / "import_function"

IMPORT_RESOURCE_TYPE = "Custom::RepoImportJob"

# Copy git, its HTTP remote helpers and their shared libraries into local/
_GIT_BINARIES = (
  "/usr/bin/git",
  "/usr/libexec/git-core/git-remote-https",
  "/usr/libexec/git-core/git-remote-http",
)
BUNDLING_COMMANDS = [
  "mkdir -p /asset-output/local/bin /asset-output/local/lib",
  "dnf install -y git",
  f"cp {' '.join(_GIT_BINARIES)} /asset-output/local/bin",
  *(
    f"ldd {binary} | awk 'NF == 4 {{ system(\"cp \" $3 \" /asset-output/local/lib/\") }}'"
    for binary in _GIT_BINARIES
  ),
  "pip install -r requirements.txt -t /asset-output",
  "cp -au /asset-input/*.py /asset-output",
]


class ImportableRepository(codecommit.Repository):
  """CodeCommit repository with a Lambda that mirrors external branches into it.

  The Lambda answers CloudFormation directly: each import is a
  ``Custom::RepoImportJob`` whose service token is the function ARN.
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    repository_name: str,
    import_timeout: Duration = Duration.minutes(3),
    **kwargs: Any,
  ) -> None:
    super().__init__(scope, id, repository_name=repository_name, **kwargs)

    runtime = lambda_.Runtime.PYTHON_3_12
    self.import_function = lambda_.Function(
      self,
      "ImportFunction",
      description="Copy Git Repository",
      runtime=runtime,
      handler="index.handler",
      code=lambda_.Code.from_asset(
        str(FUNCTION_DIR),
        bundling=BundlingOptions(
          image=runtime.bundling_image,
          command=["/bin/bash", "-c", " && ".join(BUNDLING_COMMANDS)],
          user="root",
        ),
      ),
      memory_size=2048,
      ephemeral_storage_size=Size.gibibytes(2),
      timeout=import_timeout,
      environment={
        "POWERTOOLS_SERVICE_NAME": "repo-import",
        "LOG_LEVEL": "INFO",
        "GIT_TIMEOUT_RESERVE_SECONDS": "15",
        "WORKSPACE_ROOT": "/tmp",
      },
      log_group=logs.LogGroup(
        self,
        "ImportFunctionLogs",
        retention=logs.RetentionDays.ONE_MONTH,
      ),
    )
    self.grant_pull_push(self.import_function)

  def import_from_url(
    self,
    target_branch: str,
    source_repo_url: str,
    source_branch: str,
    *,
    force_push: bool = True,
    source_token_secret: secretsmanager.ISecret | None = None,
  ) -> CustomResource:
    """Mirror ``source_branch`` of an HTTPS repository into ``target_branch``."""
    properties = {
      "SourceRepo": source_repo_url,
      "SourceBranch": source_branch,
      "TargetRepo": self.repository_clone_url_grc,
      "TargetBranch": target_branch,
      "ForcePush": "true" if force_push else "false",
    }
    if source_token_secret is not None:
      source_token_secret.grant_read(self.import_function)
      properties["SourceTokenSecret"] = source_token_secret.secret_arn

    return CustomResource(
      self,
      target_branch,
      resource_type=IMPORT_RESOURCE_TYPE,
      service_token=self.import_function.function_arn,
      properties=properties,
    )
