"""
Kernel boundary and invariants contract.

1. stock_kernel/** may NOT import stock_config.  The kernel never
   depends upward; settings reach it through stock_config.bridges.

2. stock_kernel/domain/** stays free of ORM and persistence code.  The
   only database module it may use is stock_kernel.db.types (decimal
   precision helpers).

3. Services and domain never reach into selectors.

4. The kernel invariants declaration is complete and non-empty.

These tests read source code via AST; they cannot break anything.
"""

import ast
from pathlib import Path

from stock_kernel.invariants import (
    ALL_STOCK_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    StockInvariant,
)

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """(line_number, module) for every import in a file."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...], allowed=()) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if module in allowed:
                continue
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:

    def test_kernel_does_not_import_config(self):
        violations = _violations("stock_kernel", FORBIDDEN_KERNEL_IMPORTS)

        assert not violations, (
            "Kernel boundary violation: stock_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )


class TestKernelDomainPurity:

    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "stock_kernel.db",
        "stock_kernel.models",
        "stock_kernel.repositories",
        "stock_kernel.services",
        "stock_kernel.selectors",
    )

    def test_domain_no_orm_imports(self):
        violations = _violations(
            "stock_kernel/domain",
            self.FORBIDDEN_MODULES,
            allowed=("stock_kernel.db.types",),
        )

        assert not violations, (
            "Domain purity violation: stock_kernel/domain/** must not "
            "import persistence code:\n" + "\n".join(violations)
        )


class TestWriteSideDoesNotRead:

    def test_services_do_not_import_selectors(self):
        violations = _violations("stock_kernel/services", ("stock_kernel.selectors",))

        assert not violations, "\n".join(violations)


class TestInvariantsContract:

    def test_invariants_declared(self):
        assert ALL_STOCK_INVARIANTS
        assert ALL_STOCK_INVARIANTS == frozenset(StockInvariant)

    def test_core_invariants_present(self):
        names = {invariant.name for invariant in ALL_STOCK_INVARIANTS}

        assert {
            "NON_NEGATIVE_BALANCE",
            "RECONCILIATION",
            "LEDGER_IMMUTABILITY",
            "EXACT_REVERSAL",
            "TERMINAL_APPROVAL",
        } <= names
