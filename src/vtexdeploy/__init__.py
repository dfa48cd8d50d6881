"""vtexdeploy - deployment orchestration for VTEX IO workspaces."""

__version__ = "0.4.0"
