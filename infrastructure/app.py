#!/usr/bin/env python3
"""CDK application entry point for Amplify hosting infrastructure."""

import re
import sys
from pathlib import Path

# Add the project root to the Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

import aws_cdk as cdk
import boto3

from infrastructure.config import HostingConfig
from infrastructure.stacks import HostingStack


def get_account_id() -> str:
  """Get AWS account ID from current credentials."""
  sts = boto3.client("sts")
  return str(sts.get_caller_identity()["Account"])


def stack_name_for(app_name: str) -> str:
  """CloudFormation-safe stack name for an app."""
  return "Hosting-" + re.sub(r"[^A-Za-z0-9-]", "-", app_name)


def main() -> None:
  """Create CDK app with a stack for each configured app."""
  app = cdk.App()

  # Load configuration
  config_path = app.node.try_get_context("config") or "apps.yaml"
  config = HostingConfig.from_yaml(Path(config_path))

  # Get account ID from credentials
  account_id = get_account_id()

  for app_config in config.apps:
    HostingStack(
      app,
      stack_name_for(app_config.name),
      app_config=app_config,
      env=cdk.Environment(
        account=account_id,
        region=app_config.region,
      ),
      description=f"Amplify hosting for {app_config.name}",
    )

  app.synth()


if __name__ == "__main__":
  main()
