"""CDK stack for a single Amplify-hosted app."""

from typing import Any

import aws_cdk as cdk
from aws_cdk import aws_secretsmanager as secretsmanager
from constructs import Construct

from infrastructure.cdk_constructs import AmplifyHosting
from infrastructure.config import AppConfig


class HostingStack(cdk.Stack):
  """Stack for a single hosted app."""

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    app_config: AppConfig,
    **kwargs: Any,
  ) -> None:
    super().__init__(scope, id, **kwargs)

    source_token_secret = None
    if app_config.source_token_secret:
      source_token_secret = secretsmanager.Secret.from_secret_name_v2(
        self, "SourceTokenSecret", app_config.source_token_secret
      )

    self.hosting = AmplifyHosting(
      self,
      "Hosting",
      source_repo=app_config.source_repo,
      source_branch=app_config.source_branch,
      app_root=app_config.app_root,
      environment_variables=app_config.environment_variables,
      live_updates=app_config.live_updates,
      source_token_secret=source_token_secret,
      force_push=app_config.force_push,
    )

    cdk.Tags.of(self).add("Project", "amplify-hosting")
    cdk.Tags.of(self).add("App", app_config.name)
    if app_config.owner:
      cdk.Tags.of(self).add("Owner", app_config.owner)
