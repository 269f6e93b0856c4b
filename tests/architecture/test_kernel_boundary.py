"""
Kernel boundary and invariants contract.

1. depot_kernel/** may NOT import depot_services.  The kernel never
   depends upward.
2. Selectors never write: no add/delete/flush/commit calls on a session.
3. The kernel invariants declaration is complete and non-empty.

These tests read source code via AST.
"""

import ast
import glob
from pathlib import Path

from depot_kernel.invariants import (
    ALL_STOCK_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    StockInvariant,
)

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[str]:
    return sorted(glob.glob(str(ROOT / package / "**" / "*.py"), recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


class TestKernelNoUpwardDependencies:

    def test_kernel_does_not_import_services(self):
        violations = [
            f"  {filepath}:{lineno} imports '{module}'"
            for filepath in _python_files("depot_kernel")
            for lineno, module in _extract_imports(filepath)
            for prefix in FORBIDDEN_KERNEL_IMPORTS
            if module == prefix or module.startswith(f"{prefix}.")
        ]
        assert not violations, "Kernel imports an outer layer:\n" + "\n".join(violations)

    def test_domain_has_no_orm_imports(self):
        violations = [
            f"  {filepath}:{lineno} imports '{module}'"
            for filepath in _python_files("depot_kernel/domain")
            for lineno, module in _extract_imports(filepath)
            if module.startswith("sqlalchemy") or module.startswith("depot_kernel.db")
        ]
        assert not violations, "Domain layer touches the ORM:\n" + "\n".join(violations)


class TestSelectorsAreReadOnly:

    WRITE_METHODS = {"add", "add_all", "delete", "flush", "commit"}

    def test_no_session_writes_in_selectors(self):
        violations = []
        for filepath in _python_files("depot_kernel/selectors"):
            tree = ast.parse(Path(filepath).read_text(), filename=filepath)
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr in self.WRITE_METHODS
                    and isinstance(node.func.value, ast.Attribute)
                    and node.func.value.attr == "session"
                ):
                    violations.append(f"  {filepath}:{node.lineno} calls session.{node.func.attr}")
        assert not violations, "\n".join(violations)


class TestInvariantsDeclaration:

    def test_invariants_declared(self):
        assert ALL_STOCK_INVARIANTS == frozenset(StockInvariant)
        assert StockInvariant.NON_NEGATIVE_STOCK in ALL_STOCK_INVARIANTS
        assert StockInvariant.LEDGER_CONSISTENCY in ALL_STOCK_INVARIANTS
