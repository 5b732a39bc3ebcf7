"""
Unit Tests for Package Imports
"""

import subprocess
import sys

import pytest


@pytest.mark.parametrize("module", [
    "plutus.models",
    "plutus.services",
    "plutus.services.database",
    "plutus.main",
])
def test_module_imports_standalone(module):
    """Each package imports cleanly in a fresh interpreter."""
    result = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        capture_output=True,
        text=True,
    )

    assert result.returncode == 0, result.stderr
