from dataclasses import replace
from pathlib import Path

import pytest

from binbuilder.plan import (
    DEFAULT_PRUNE,
    BuildPlan,
    PlanError,
    default_plan,
    load_plan,
    plan_from_dict,
    render_plan,
    resolve_layout,
)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "plan.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_default_plan_matches_builtin_pipeline() -> None:
    plan = default_plan()
    assert plan.source.url == "https://github.com/ckoshka/everything"
    assert plan.source.depth == 1
    assert plan.clone_dir == "everything"
    assert plan.output_dir == "binaries"
    assert plan.prune == ("ai_stuff", "archived", "experimental", "fun", "useful", "wasm_libs")
    assert plan.build.command == ("cargo", "build", "--release", "--workspace")


def test_render_plan_resolves_clone_dir() -> None:
    plan = render_plan(default_plan())
    assert plan.build.artifacts_dir == "everything/target/release"


def test_empty_file_falls_back_to_defaults(tmp_path: Path) -> None:
    assert load_plan(_write(tmp_path, "")) == BuildPlan()


def test_load_plan_full(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
source:
  url: https://example.invalid/ws.git
  ref: v2
  depth: 3
clone_dir: ws
output_dir: out
prune: [docs, examples]
build:
  command: make -j4 all
  artifacts: "{{ clone_dir }}/build"
""",
    )
    plan = render_plan(load_plan(path))
    assert plan.source.url == "https://example.invalid/ws.git"
    assert plan.source.ref == "v2"
    assert plan.source.depth == 3
    assert plan.prune == ("docs", "examples")
    assert plan.build.command == ("make", "-j4", "all")
    assert plan.build.artifacts_dir == "ws/build"


def test_github_source() -> None:
    plan = plan_from_dict({"source": {"github": {"owner": "ckoshka", "name": "everything"}}})
    assert plan.source.is_github
    assert plan.source.github_owner == "ckoshka"
    assert plan.prune == DEFAULT_PRUNE


@pytest.mark.parametrize("name", ["/etc", "../outside", "a/../../b", ""])
def test_unsafe_prune_names_rejected(name: str) -> None:
    with pytest.raises(PlanError):
        plan_from_dict({"prune": [name]})


def test_bad_values_rejected(tmp_path: Path) -> None:
    with pytest.raises(PlanError):
        plan_from_dict({"source": {"depth": 0}})
    with pytest.raises(PlanError):
        plan_from_dict({"build": {"command": []}})
    with pytest.raises(PlanError):
        plan_from_dict({"source": {"url": "x", "github": {"owner": "a", "name": "b"}}})
    with pytest.raises(PlanError):
        load_plan(_write(tmp_path, "- just\n- a list\n"))
    with pytest.raises(PlanError):
        load_plan(tmp_path / "missing.yaml")


def test_undefined_template_variable() -> None:
    plan = plan_from_dict({"build": {"artifacts": "{{ nope }}/release"}})
    with pytest.raises(PlanError):
        render_plan(plan)


@pytest.mark.parametrize("name", [".", "..", "./", "../elsewhere", "a/../.."])
def test_clone_dir_must_be_below_workdir(name: str) -> None:
    with pytest.raises(PlanError):
        plan_from_dict({"clone_dir": name})


def test_resolve_layout_rejects_workdir_and_parents(tmp_path: Path) -> None:
    for clone_dir in (str(tmp_path), str(tmp_path.parent)):
        with pytest.raises(PlanError):
            resolve_layout(replace(default_plan(), clone_dir=clone_dir), tmp_path)


def test_resolve_layout_output_inside_clone(tmp_path: Path) -> None:
    plan = plan_from_dict({"output_dir": "everything/bin"})
    with pytest.raises(PlanError):
        resolve_layout(plan, tmp_path)

    _, clone_dir, output_dir = resolve_layout(plan, tmp_path, keep_source=True)
    assert output_dir == clone_dir / "bin"
