"""Amplify SSR hosting fed from a mirrored CodeCommit repository."""

import json

from aws_cdk import Aws, CfnOutput
from aws_cdk import aws_amplify as amplify
from aws_cdk import aws_codebuild as codebuild
from aws_cdk import aws_iam as iam
from aws_cdk import aws_secretsmanager as secretsmanager
from constructs import Construct

from ..config import LiveUpdate
from .build_spec import next_ssr_build_spec, output_trace_root
from .repository import ImportableRepository

PROD_BRANCH = "main"


class AmplifyHosting(Construct):
  """Complete Next.js SSR hosting pipeline.

  Creates:
  - CodeCommit repository with an import job mirroring the source branch
  - IAM service role used by Amplify for SSR logging and repository access
  - Amplify app (WEB_COMPUTE) with a monorepo-aware build spec
  - Production branch with auto build
  - Logging policy scoped to the app's log groups
  """

  def __init__(
    self,
    scope: Construct,
    id: str,
    *,
    source_repo: str,
    source_branch: str,
    app_root: str,
    environment_variables: dict[str, str] | None = None,
    live_updates: list[LiveUpdate] | None = None,
    source_token_secret: secretsmanager.ISecret | None = None,
    force_push: bool = True,
  ) -> None:
    super().__init__(scope, id)

    environment_variables = environment_variables or {}
    live_updates = live_updates or []
    resource_name = self.node.path.replace("/", "")

    # Repository and the job that fills it
    self.repository = ImportableRepository(
      self,
      "Repo",
      repository_name=resource_name,
    )
    self.import_job = self.repository.import_from_url(
      PROD_BRANCH,
      source_repo,
      source_branch,
      force_push=force_push,
      source_token_secret=source_token_secret,
    )

    self.ssr_logging_role = iam.Role(
      self,
      "AmplifySSRLoggingRole",
      description="The service role that will be used by AWS Amplify for SSR app logging.",
      path="/service-role/",
      assumed_by=iam.ServicePrincipal("amplify.amazonaws.com"),
    )
    self.repository.grant_pull(self.ssr_logging_role)

    build_spec = codebuild.BuildSpec.from_object_to_yaml(
      next_ssr_build_spec(app_root, list(environment_variables))
    )

    app_environment = {
      **environment_variables,
      "NEXT_PRIVATE_OUTPUT_TRACE_ROOT": output_trace_root(app_root),
      "AMPLIFY_MONOREPO_APP_ROOT": app_root,
      "AMPLIFY_DIFF_DEPLOY": "false",
      "_LIVE_UPDATES": json.dumps([u.to_dict() for u in live_updates]),
    }

    self.app = amplify.CfnApp(
      self,
      "App",
      name=resource_name,
      platform="WEB_COMPUTE",
      repository=self.repository.repository_clone_url_http,
      iam_service_role=self.ssr_logging_role.role_arn,
      build_spec=build_spec.to_build_spec(),
      environment_variables=[
        amplify.CfnApp.EnvironmentVariableProperty(name=k, value=v)
        for k, v in app_environment.items()
      ],
      custom_rules=[
        amplify.CfnApp.CustomRuleProperty(
          source="/<*>",
          target="/index.html",
          status="404-200",
        )
      ],
    )
    app_id = self.app.attr_app_id

    self.prod_branch = amplify.CfnBranch(
      self,
      "ProdBranch",
      app_id=app_id,
      branch_name=PROD_BRANCH,
      stage="PRODUCTION",
      enable_auto_build=True,
      framework="Next.js - SSR",
      environment_variables=[
        amplify.CfnBranch.EnvironmentVariableProperty(
          name="NEXT_PUBLIC_SITE_URL",
          value=f"https://{PROD_BRANCH}.{app_id}.amplifyapp.com",
        )
      ],
    )

    # Push only once the branch exists so the first import triggers a build
    self.import_job.node.add_dependency(self.prod_branch)

    log_group_arn = f"arn:{Aws.PARTITION}:logs:{Aws.REGION}:{Aws.ACCOUNT_ID}:log-group"
    self.ssr_logging_policy = iam.Policy(
      self,
      "AmplifySSRLoggingPolicy",
      policy_name=f"AmplifySSRLoggingPolicy-{app_id}",
      statements=[
        iam.PolicyStatement(
          sid="PushLogs",
          actions=["logs:CreateLogStream", "logs:PutLogEvents"],
          resources=[f"{log_group_arn}:/aws/amplify/{app_id}:log-stream:*"],
        ),
        iam.PolicyStatement(
          sid="CreateLogGroup",
          actions=["logs:CreateLogGroup"],
          resources=[f"{log_group_arn}:/aws/amplify/*"],
        ),
        iam.PolicyStatement(
          sid="DescribeLogGroups",
          actions=["logs:DescribeLogGroups"],
          resources=[f"{log_group_arn}:*"],
        ),
      ],
    )
    self.ssr_logging_policy.attach_to_role(self.ssr_logging_role)

    self.prod_branch_url = f"https://{PROD_BRANCH}.{self.app.attr_default_domain}"

    CfnOutput(
      self,
      "Url",
      value=self.prod_branch_url,
      description="Production branch URL",
    )
    CfnOutput(
      self,
      "RepositoryCloneUrl",
      value=self.repository.repository_clone_url_grc,
      description="CodeCommit clone URL (git-remote-codecommit)",
    )
    CfnOutput(
      self,
      "ImportedCommit",
      value=self.import_job.get_att_string("CommitId"),
      description="Commit imported into the production branch",
    )
