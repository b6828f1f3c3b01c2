"""CDK stacks for Amplify hosting infrastructure."""

from .hosting_stack import HostingStack

__all__ = ["HostingStack"]
