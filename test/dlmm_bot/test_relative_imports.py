import ast
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
PACKAGE_ROOT = REPO_ROOT / "dlmm_bot"

# Top-level names that only exist when the repository root is on sys.path.
ROOT_ONLY_MODULES = {"dlmm_bot", "controllers", "scripts", "services", "models", "config", "run_monitor"}


def _absolute_imports(path: Path):
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names = [alias.name for alias in node.names]
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            names = [node.module]
        else:
            continue
        for name in names:
            if name.split(".")[0] in ROOT_ONLY_MODULES:
                yield node.lineno, name


@pytest.mark.parametrize(
    "path",
    sorted(PACKAGE_ROOT.rglob("*.py")),
    ids=lambda p: str(p.relative_to(REPO_ROOT)),
)
def test_bot_package_imports_itself_relatively(path):
    offenders = [f"{lineno}: {name}" for lineno, name in _absolute_imports(path)]

    assert offenders == [], f"{path.relative_to(REPO_ROOT)} must stay mountable on its own"
