"""
plan.py

Responsibility: Load a build plan (YAML) into a typed, validated model.

A plan describes where the source comes from, which top-level folders are
pruned before building, the build command and where its artifacts land.
Every key is optional; anything missing falls back to `default_plan()`.

String values may reference `{{ clone_dir }}` and `{{ output_dir }}`; they are
rendered with Jinja2 after the two directories are known.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path, PurePosixPath
from typing import Any

import yaml
from jinja2 import Environment, StrictUndefined, TemplateError


class PlanError(ValueError):
    pass


DEFAULT_SOURCE_URL = "https://github.com/ckoshka/everything"
DEFAULT_PRUNE = ("ai_stuff", "archived", "experimental", "fun", "useful", "wasm_libs")
DEFAULT_BUILD_COMMAND = ("cargo", "build", "--release", "--workspace")
DEFAULT_ARTIFACTS = "{{ clone_dir }}/target/release"


@dataclass(frozen=True)
class SourceSpec:
    """Where to clone from: either a URL or a GitHub owner/name pair."""

    url: str | None = DEFAULT_SOURCE_URL
    github_owner: str | None = None
    github_name: str | None = None
    ref: str | None = None
    depth: int = 1

    @property
    def is_github(self) -> bool:
        return self.url is None


@dataclass(frozen=True)
class BuildSpec:
    command: tuple[str, ...] = DEFAULT_BUILD_COMMAND
    artifacts_dir: str = DEFAULT_ARTIFACTS


@dataclass(frozen=True)
class BuildPlan:
    source: SourceSpec = field(default_factory=SourceSpec)
    clone_dir: str = "everything"
    output_dir: str = "binaries"
    prune: tuple[str, ...] = DEFAULT_PRUNE
    build: BuildSpec = field(default_factory=BuildSpec)


def default_plan() -> BuildPlan:
    return BuildPlan()


def _check_prune_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise PlanError("Prune entries must be non-empty folder names.")
    p = PurePosixPath(name.replace("\\", "/"))
    if p.is_absolute() or Path(name).is_absolute():
        raise PlanError(f"Prune entry must be relative: {name}")
    if any(part in ("..", ".") for part in p.parts):
        raise PlanError(f"Prune entry must stay inside the clone: {name}")
    return name


def _check_clone_dir(name: str) -> str:
    norm = os.path.normpath(name)
    if norm == "." or norm == ".." or norm.startswith(".." + os.sep):
        raise PlanError(f"`clone_dir` must be a new directory below the working directory: {name}")
    return name


def resolve_layout(plan: BuildPlan, workdir: str | Path, *, keep_source: bool = False) -> tuple[Path, Path, Path]:
    """
    Resolve (workdir, clone_dir, output_dir) and refuse layouts where removing
    the clone would take the working directory or the collected artifacts with it.
    """
    base = Path(workdir).resolve()
    clone_dir = (base / plan.clone_dir).resolve()
    output_dir = (base / plan.output_dir).resolve()

    if clone_dir == base or clone_dir in base.parents:
        raise PlanError(f"`clone_dir` must not be the working directory or one of its parents: {clone_dir}")
    if not keep_source and (output_dir == clone_dir or clone_dir in output_dir.parents):
        raise PlanError(f"`output_dir` is inside the clone and would be deleted with it: {output_dir}")
    return base, clone_dir, output_dir


def _as_mapping(value: Any, key: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PlanError(f"`{key}` must be an object/mapping when provided.")
    return value


def _parse_command(raw: Any) -> tuple[str, ...]:
    if isinstance(raw, str):
        cmd = tuple(shlex.split(raw))
    elif isinstance(raw, (list, tuple)):
        cmd = tuple(str(part) for part in raw)
    else:
        raise PlanError("`build.command` must be a list or a string.")
    if not cmd:
        raise PlanError("`build.command` must not be empty.")
    return cmd


def _parse_source(raw: dict[str, Any], base: SourceSpec) -> SourceSpec:
    gh = _as_mapping(raw.get("github"), "source.github")
    url = raw.get("url")
    owner = gh.get("owner")
    name = gh.get("name")

    if url and (owner or name):
        raise PlanError("`source` must set either `url` or `github`, not both.")
    if (owner is None) != (name is None):
        raise PlanError("`source.github` needs both `owner` and `name`.")

    if url:
        url, owner, name = str(url).strip(), None, None
    elif owner:
        url, owner, name = None, str(owner).strip(), str(name).strip()
    else:
        url, owner, name = base.url, base.github_owner, base.github_name

    ref = raw.get("ref", base.ref)
    if ref is not None:
        ref = str(ref).strip() or None

    try:
        depth = int(raw.get("depth", base.depth))
    except (TypeError, ValueError) as e:
        raise PlanError("`source.depth` must be an integer.") from e
    if depth < 1:
        raise PlanError("`source.depth` must be at least 1.")

    return SourceSpec(url=url, github_owner=owner, github_name=name, ref=ref, depth=depth)


def plan_from_dict(data: dict[str, Any], *, base: BuildPlan | None = None) -> BuildPlan:
    """Build a plan from a parsed mapping, filling gaps from `base`."""
    base = base or default_plan()

    source = _parse_source(_as_mapping(data.get("source"), "source"), base.source)

    clone_dir = str(data.get("clone_dir") or base.clone_dir).strip()
    output_dir = str(data.get("output_dir") or base.output_dir).strip()
    if not clone_dir or not output_dir:
        raise PlanError("`clone_dir` and `output_dir` must be non-empty.")
    _check_clone_dir(clone_dir)

    prune_raw = data.get("prune", base.prune)
    if prune_raw is None:
        prune_raw = ()
    if not isinstance(prune_raw, (list, tuple)):
        raise PlanError("`prune` must be a list of folder names.")
    prune = tuple(_check_prune_name(str(p)) for p in prune_raw)

    build_raw = _as_mapping(data.get("build"), "build")
    command = _parse_command(build_raw["command"]) if "command" in build_raw else base.build.command
    artifacts = str(build_raw.get("artifacts") or base.build.artifacts_dir)

    return BuildPlan(
        source=source,
        clone_dir=clone_dir,
        output_dir=output_dir,
        prune=prune,
        build=BuildSpec(command=command, artifacts_dir=artifacts),
    )


def load_plan(plan_path: str | Path) -> BuildPlan:
    """
    Parse a YAML plan file into a `BuildPlan`.

    Recognised keys:
    - source.url | source.github.{owner,name}, source.ref, source.depth
    - clone_dir, output_dir
    - prune: list of folder names
    - build.command: list or shell-style string
    - build.artifacts: directory holding the build outputs
    """
    path = Path(plan_path)
    if not path.exists():
        raise PlanError(f"Plan file does not exist: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise PlanError(f"Plan file is not valid YAML: {path}") from e
    if not isinstance(data, dict):
        raise PlanError("Plan file must be a mapping/object at the top level.")
    return plan_from_dict(data)


def render_plan(plan: BuildPlan) -> BuildPlan:
    """
    Resolve Jinja2 placeholders in the plan's path-like strings and build command.

    Only `clone_dir` and `output_dir` are available; anything else is an error.
    """
    env = Environment(autoescape=False, undefined=StrictUndefined)
    context = {"clone_dir": plan.clone_dir, "output_dir": plan.output_dir}

    def render(text: str) -> str:
        if "{{" not in text and "{%" not in text:
            return text
        try:
            return env.from_string(text).render(**context)
        except TemplateError as e:
            raise PlanError(f"Failed rendering plan value: {text!r} ({e})") from e

    return replace(
        plan,
        build=BuildSpec(
            command=tuple(render(part) for part in plan.build.command),
            artifacts_dir=render(plan.build.artifacts_dir),
        ),
    )
