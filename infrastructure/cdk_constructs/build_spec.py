"""Amplify build specification for Next.js SSR apps in a monorepo."""

from typing import Any


def output_trace_root(app_root: str) -> str:
  """Relative path from ``app_root`` back to the repository root."""
  parts = [p for p in app_root.strip("/").split("/") if p and p != "."]
  if not parts:
    return "./"
  return "/".join(".." for _ in parts) + "/"


def next_ssr_build_spec(app_root: str, env_keys: list[str]) -> dict[str, Any]:
  """Build spec that produces a standalone Next.js server bundle.

  Variables named in ``env_keys`` and any ``NEXT_PUBLIC_`` variables are
  written to ``.env.production`` before the build so the server sees them.
  """
  pre_build = []
  if env_keys:
    patterns = " ".join(f"-e {key}" for key in env_keys)
    pre_build.append(f"env | grep {patterns} >> .env.production")
  pre_build += [
    "env | grep -e NEXT_PUBLIC_ >> .env.production",
    "npm ci || npm install",
  ]

  return {
    "version": 1,
    "applications": [
      {
        "appRoot": app_root,
        "frontend": {
          "phases": {
            "preBuild": {"commands": pre_build},
            "build": {
              "commands": [
                "npm run build",
                "npm prune --omit=dev",
              ],
            },
            "postBuild": {
              "commands": [
                f"ln -s {app_root}/server.js .next/standalone/server.js",
                f"cp -r public .next/standalone/{app_root}/public",
                f"cp -r .next/static .next/standalone/{app_root}/.next/static",
                f"cp .env .env.production .next/standalone/{app_root}",
                f"ln -s /tmp .next/standalone/{app_root}/.next/cache",
              ],
            },
          },
          "artifacts": {
            "baseDirectory": ".next",
            "files": ["**/*"],
          },
          "cache": {
            "paths": ["node_modules/**/*"],
          },
        },
      }
    ],
  }
