"""
workspace.py

Responsibility: Filesystem side of a build run.

- Prune folders from a fresh clone (concurrently; deletions are independent).
- Move build artifacts into the output directory in a deterministic order.
- Remove the clone once the run is over.

This module intentionally does NOT know about git, the build tool or CLI parsing.
"""

from __future__ import annotations

import logging
import os
import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


class WorkspaceError(RuntimeError):
    pass


@dataclass(frozen=True)
class CollectResult:
    moved: tuple[str, ...]

    @property
    def moved_count(self) -> int:
        return len(self.moved)


def remove_tree(path: str | Path) -> None:
    """`rm -rf`: delete a file or directory; a missing path is fine."""
    p = Path(path)
    while p.is_symlink() or p.exists():
        try:
            if p.is_dir() and not p.is_symlink():
                shutil.rmtree(p)
            else:
                p.unlink()
        except FileNotFoundError:
            # Part of the tree vanished underneath us; go again on what is left.
            continue


def _outermost(targets: list[Path]) -> list[Path]:
    """Drop duplicates and targets nested under another target."""
    kept: list[Path] = []
    for target in sorted(set(targets), key=lambda t: len(t.parts)):
        if not any(k == target or k in target.parents for k in kept):
            kept.append(target)
    return kept


def prepare_clone_dir(clone_dir: Path, *, overwrite: bool) -> None:
    """Refuse an existing clone target (git would) unless overwriting is allowed."""
    if not clone_dir.exists():
        return
    if not overwrite:
        raise WorkspaceError(f"Clone directory already exists: {clone_dir} (use --overwrite to replace it)")
    logger.debug("Removing existing clone directory %s", clone_dir)
    remove_tree(clone_dir)


def prune_folders(clone_dir: str | Path, folders: tuple[str, ...] | list[str], *, max_workers: int | None = None) -> None:
    """
    Delete `folders` (relative to `clone_dir`) concurrently and wait for all of them.

    The first failure is re-raised once every deletion has finished. Afterwards
    none of the folders may exist.
    """
    root = Path(clone_dir).resolve()
    targets = [Path(os.path.normpath(root / name)) for name in folders]
    for target in targets:
        if root not in target.parents:
            raise WorkspaceError(f"Refusing to prune outside the clone: {target}")
    targets = _outermost(targets)
    if not targets:
        return

    errors: list[tuple[Path, BaseException]] = []
    with ThreadPoolExecutor(max_workers=max_workers or len(targets)) as executor:
        futures = {executor.submit(remove_tree, target): target for target in targets}
        for future in as_completed(futures):
            target = futures[future]
            try:
                future.result()
                logger.debug("Pruned %s", target.relative_to(root))
            except OSError as e:
                errors.append((target, e))

    if errors:
        target, err = errors[0]
        raise WorkspaceError(f"Failed to prune {target}: {err}") from err

    leftovers = [t for t in targets if t.exists()]
    if leftovers:
        raise WorkspaceError(f"Folders still present after pruning: {', '.join(str(t) for t in leftovers)}")


def _iter_artifacts(artifacts_dir: Path) -> list[Path]:
    """
    Top-level entries of the artifacts dir, sorted by name.

    Dotfiles are skipped, like a shell `*` glob.
    """
    entries = [p for p in artifacts_dir.iterdir() if not p.name.startswith(".")]
    entries.sort(key=lambda p: p.name)
    return entries


def check_output_dir(output_dir: Path, *, overwrite: bool) -> None:
    """Fail early on a non-empty output directory without creating anything."""
    if output_dir.exists() and not output_dir.is_dir():
        raise WorkspaceError(f"Output path is not a directory: {output_dir}")
    if not overwrite and output_dir.is_dir() and any(output_dir.iterdir()):
        raise WorkspaceError(f"Output directory is not empty: {output_dir} (use --overwrite to allow)")


def ensure_output_dir(output_dir: Path, *, overwrite: bool) -> None:
    check_output_dir(output_dir, overwrite=overwrite)
    output_dir.mkdir(parents=True, exist_ok=True)


def collect_artifacts(
    *,
    artifacts_dir: str | Path,
    output_dir: str | Path,
    overwrite: bool = False,
) -> CollectResult:
    """
    Move every artifact from `artifacts_dir` into `output_dir`.

    - Creates `output_dir` as needed.
    - With `overwrite`, entries already present in `output_dir` are replaced.
    """
    src_dir = Path(artifacts_dir).resolve()
    dst_dir = Path(output_dir).resolve()

    if not src_dir.is_dir():
        raise WorkspaceError(f"Artifacts directory not found: {src_dir}")

    entries = _iter_artifacts(src_dir)
    if not entries:
        raise WorkspaceError(f"No artifacts found in {src_dir}")
    ensure_output_dir(dst_dir, overwrite=overwrite)

    moved: list[str] = []
    for src_path in entries:
        dst_path = dst_dir / src_path.name
        if os.path.lexists(dst_path):
            remove_tree(dst_path)
        shutil.move(str(src_path), str(dst_path))
        moved.append(src_path.name)

    return CollectResult(moved=tuple(moved))
