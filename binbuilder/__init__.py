"""
binbuilder package

Clone a multi-package workspace, prune it, build it and collect the binaries.

Key responsibilities are split across modules:
- `plan.py`: load a YAML build plan into a typed configuration
- `workspace.py`: prune folders, move artifacts, remove the clone
- `github_client.py`: isolated GitHub REST API lookups (owner/name sources)
- `cli.py`: CLI entrypoint and orchestration (clone -> prune -> build -> collect)
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
