"""Architectural boundary tests enforcing package dependency rules.

Dependency direction (allowed):
  lobby → game → shared
  lobby → shared

Forbidden (runtime imports):
  game → lobby
  shared → game, lobby
"""

import ast
from pathlib import Path

_BACKEND_ROOT = Path(__file__).resolve().parents[3]


def _collect_runtime_import_targets(source_dir: Path) -> list[tuple[str, int, str]]:
    """Parse all non-test .py files and return (filename, lineno, module) for runtime imports.

    Skip imports inside `if TYPE_CHECKING:` blocks; those are type-only
    and do not create runtime layer coupling.
    """
    results: list[tuple[str, int, str]] = []
    for py_file in source_dir.rglob("*.py"):
        if "tests" in py_file.relative_to(source_dir).parts:
            continue
        tree = ast.parse(py_file.read_text(), filename=str(py_file))
        type_checking_ranges = _find_type_checking_ranges(tree)
        for node in ast.walk(tree):
            if not isinstance(node, (ast.Import, ast.ImportFrom)):
                continue
            if any(start <= node.lineno <= end for start, end in type_checking_ranges):
                continue
            if isinstance(node, ast.Import):
                results.extend((py_file.name, node.lineno, alias.name) for alias in node.names)
            elif node.module is not None:
                results.append((py_file.name, node.lineno, node.module))
    return results


def _find_type_checking_ranges(tree: ast.Module) -> list[tuple[int, int]]:
    """Find line ranges of `if TYPE_CHECKING:` blocks."""
    ranges: list[tuple[int, int]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.If) and isinstance(node.test, ast.Name) and node.test.id == "TYPE_CHECKING":
            start = node.lineno
            end = max(child.lineno for child in ast.walk(node) if hasattr(child, "lineno"))
            ranges.append((start, end))
    return ranges


def test_game_does_not_import_lobby():
    """game modules must not import from lobby (one-way dependency)."""
    violations = [
        f"{name}:{lineno} {module}"
        for name, lineno, module in _collect_runtime_import_targets(_BACKEND_ROOT / "game")
        if module.split(".")[0] == "lobby"
    ]
    assert violations == [], f"game imports from lobby: {violations}"


def test_shared_does_not_import_game_or_lobby():
    """shared is the bottom layer and must not import from game or lobby."""
    violations = [
        f"{name}:{lineno} {module}"
        for name, lineno, module in _collect_runtime_import_targets(_BACKEND_ROOT / "shared")
        if module.split(".")[0] in {"game", "lobby"}
    ]
    assert violations == [], f"shared imports from game or lobby: {violations}"
