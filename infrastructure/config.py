"""Configuration loader for Amplify-hosted apps."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

LIVE_UPDATE_TYPES = ("nvm", "npm", "internal")


@dataclass
class LiveUpdate:
  """A package the app keeps current at build time."""

  pkg: str
  type: str
  version: str

  def __post_init__(self) -> None:
    if self.type not in LIVE_UPDATE_TYPES:
      raise ValueError(
        f"Live update type for {self.pkg} must be one of {LIVE_UPDATE_TYPES}, "
        f"got {self.type!r}"
      )

  def to_dict(self) -> dict[str, str]:
    return {"pkg": self.pkg, "type": self.type, "version": self.version}


@dataclass
class AppConfig:
  """Configuration for a single hosted app."""

  name: str
  source_repo: str
  source_branch: str = "main"
  app_root: str = "."
  environment_variables: dict[str, str] = field(default_factory=dict)
  live_updates: list[LiveUpdate] = field(default_factory=list)
  source_token_secret: str | None = None  # Secrets Manager name or ARN
  force_push: bool = True
  region: str = "us-east-1"
  owner: str | None = None


@dataclass
class HostingConfig:
  """Multi-app configuration."""

  apps: list[AppConfig] = field(default_factory=list)

  @classmethod
  def from_yaml(cls, path: Path | str = "apps.yaml") -> "HostingConfig":
    """Load configuration from YAML file."""
    with open(path) as f:
      data = yaml.safe_load(f) or {}

    defaults = data.get("defaults", {})
    apps: list[AppConfig] = []

    for app_data in data.get("apps", []):
      # Merge defaults with app-specific config
      merged: dict[str, Any] = {**defaults, **app_data}
      environment = {
        **defaults.get("environment_variables", {}),
        **app_data.get("environment_variables", {}),
      }

      apps.append(
        AppConfig(
          name=merged["name"],
          source_repo=merged["source_repo"],
          source_branch=merged.get("source_branch", "main"),
          app_root=merged.get("app_root", "."),
          environment_variables={k: str(v) for k, v in environment.items()},
          live_updates=[LiveUpdate(**u) for u in merged.get("live_updates", [])],
          source_token_secret=merged.get("source_token_secret"),
          force_push=merged.get("force_push", True),
          region=merged.get("region", "us-east-1"),
          owner=merged.get("owner"),
        )
      )

    names = [a.name for a in apps]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
      raise ValueError(f"Duplicate app names: {', '.join(duplicates)}")

    return cls(apps=apps)
