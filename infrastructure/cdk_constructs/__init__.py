"""CDK constructs for Amplify hosting infrastructure."""

from .amplify_hosting import AmplifyHosting
from .build_spec import next_ssr_build_spec
from .repository import ImportableRepository

__all__ = [
  "AmplifyHosting",
  "ImportableRepository",
  "next_ssr_build_spec",
]
