"""
cli.py

Responsibility: CLI entrypoint for binbuilder.

High-level flow (running with no arguments uses the built-in plan):
1) Shallow-clone the source repository
2) Prune the plan's folders from the clone (concurrently)
3) Run the workspace build inside the clone
4) Move the build artifacts into the output directory
5) Remove the clone

This module orchestrates; the pieces live elsewhere:
- Plan loading: `plan.py`
- Filesystem work: `workspace.py`
- GitHub API: `github_client.py`
"""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
from dataclasses import replace
from pathlib import Path
from typing import Callable

from binbuilder.github_client import GitHubClient, GitHubError
from binbuilder.plan import BuildPlan, PlanError, SourceSpec, default_plan, load_plan, render_plan, resolve_layout
from binbuilder.workspace import (
    CollectResult,
    WorkspaceError,
    check_output_dir,
    collect_artifacts,
    prepare_clone_dir,
    prune_folders,
    remove_tree,
)

logger = logging.getLogger(__name__)


class CLIError(RuntimeError):
    pass


Runner = Callable[..., None]


def _run(cmd: list[str], *, cwd: Path, env: dict[str, str] | None = None) -> None:
    """
    Run a subprocess command, raising a CLIError on failure.
    """
    logger.debug("Running %s (cwd=%s)", " ".join(cmd), cwd)
    if not Path(cwd).is_dir():
        raise CLIError(f"Working directory does not exist: {cwd}")
    try:
        proc = subprocess.run(cmd, cwd=str(cwd), env=env, check=True, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
    except FileNotFoundError as e:
        raise CLIError(f"Command not found: {cmd[0]}") from e
    except subprocess.CalledProcessError as e:
        raise CLIError(f"Command failed: {' '.join(cmd)}\n\n{e.stdout}") from e
    if proc.stdout:
        logger.debug("%s", proc.stdout.rstrip())


def _git_env(base_env: dict[str, str]) -> dict[str, str]:
    """
    Never let git wait for credentials on the terminal; a private URL without
    credentials should fail instead of hanging.
    """
    env = dict(base_env)
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    return env


def _resolve_source(source: SourceSpec, *, github_token: str | None) -> tuple[str, str | None]:
    """Return (clone_url, ref) for the plan's source."""
    if not source.is_github:
        return str(source.url), source.ref

    gh = GitHubClient(github_token)
    repo = gh.get_repo(str(source.github_owner), str(source.github_name))
    logger.debug("Resolved %s/%s to %s", repo.owner, repo.name, repo.clone_url)
    return repo.clone_url, source.ref or repo.default_branch


def _clone_cmd(url: str, ref: str | None, depth: int, clone_dir: Path) -> list[str]:
    cmd = ["git", "clone", "--depth", str(depth)]
    if ref:
        cmd += ["--branch", ref]
    return cmd + [url, str(clone_dir)]


def _discard_clone(clone_dir: Path, *, keep_source: bool, after_error: bool = False) -> None:
    if keep_source:
        logger.info("Keeping source tree at %s", clone_dir)
        return
    try:
        remove_tree(clone_dir)
    except OSError as e:
        if after_error:
            # Keep the pipeline error as the one that propagates.
            logger.error("Failed to remove clone directory %s: %s", clone_dir, e)
            return
        raise WorkspaceError(f"Failed to remove clone directory {clone_dir}: {e}") from e


def run_plan(
    plan: BuildPlan,
    *,
    workdir: str | Path = ".",
    keep_source: bool = False,
    overwrite: bool = False,
    github_token: str | None = None,
    runner: Runner = _run,
) -> CollectResult:
    """
    Execute a build plan relative to `workdir`.

    The clone is removed when the run ends, whether it succeeded or not, unless
    `keep_source` is set. The output directory is only created once the build
    has succeeded.
    """
    plan = render_plan(plan)
    base, clone_dir, output_dir = resolve_layout(plan, workdir, keep_source=keep_source)
    if not base.is_dir():
        raise WorkspaceError(f"Working directory does not exist: {base}")
    artifacts_dir = base / plan.build.artifacts_dir

    check_output_dir(output_dir, overwrite=overwrite)
    url, ref = _resolve_source(plan.source, github_token=github_token)
    prepare_clone_dir(clone_dir, overwrite=overwrite)

    logger.info("Cloning directory...")
    try:
        runner(_clone_cmd(url, ref, plan.source.depth, clone_dir), cwd=base, env=_git_env(os.environ.copy()))
        prune_folders(clone_dir, plan.prune)
        logger.info("Done cloning and cleaning directory...")

        logger.info("Building targets...")
        runner(list(plan.build.command), cwd=clone_dir)
        logger.info("Done building targets...")

        result = collect_artifacts(artifacts_dir=artifacts_dir, output_dir=output_dir, overwrite=overwrite)
        logger.info("Moved %d artifacts into %s", result.moved_count, output_dir)
    except BaseException:
        _discard_clone(clone_dir, keep_source=keep_source, after_error=True)
        raise
    _discard_clone(clone_dir, keep_source=keep_source)

    logger.info("Done!")
    return result


def _apply_overrides(plan: BuildPlan, args: argparse.Namespace) -> BuildPlan:
    if args.source:
        plan = replace(plan, source=SourceSpec(url=args.source, ref=args.ref or plan.source.ref, depth=plan.source.depth))
    elif args.ref:
        plan = replace(plan, source=replace(plan.source, ref=args.ref))
    if args.clone_dir:
        plan = replace(plan, clone_dir=args.clone_dir)
    if args.output_dir:
        plan = replace(plan, output_dir=args.output_dir)
    return plan


def build_cmd(args: argparse.Namespace) -> int:
    plan = load_plan(args.plan) if args.plan else default_plan()
    plan = _apply_overrides(plan, args)

    token = args.github_token or os.environ.get("GITHUB_TOKEN") or None
    run_plan(
        plan,
        workdir=args.workdir,
        keep_source=bool(args.keep_source),
        overwrite=bool(args.overwrite),
        github_token=token,
    )
    return 0


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="binbuilder", description="Clone a workspace, prune it, build it and collect the binaries")
    p.add_argument("--plan", default=None, help="YAML build plan (default: built-in plan)")
    p.add_argument("--workdir", default=".", help="Directory the clone and output paths are relative to (default: .)")
    p.add_argument("--source", default=None, help="Repository URL to clone (overrides the plan's source)")
    p.add_argument("--ref", default=None, help="Branch or tag to clone")
    p.add_argument("--clone-dir", default=None, help="Clone target directory (overrides plan.clone_dir)")
    p.add_argument("--output-dir", default=None, help="Artifact destination (overrides plan.output_dir)")
    p.add_argument("--keep-source", action="store_true", help="Do not delete the clone afterwards")
    p.add_argument("--overwrite", action="store_true", help="Replace an existing clone and allow a non-empty output directory")
    p.add_argument("--github-token", default=None, help="GitHub token for owner/name sources (or set env GITHUB_TOKEN)")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    p.set_defaults(func=build_cmd)
    return p


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        return int(args.func(args))
    except (CLIError, PlanError, WorkspaceError, GitHubError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
