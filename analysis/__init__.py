"""Analysis pipeline for Fieldedge.

Pipeline phases (in order):
  01_edge_effects — Posterior response curves vs. distance from the field edge

Shared infrastructure at root: run_context.py, report.py

Uses a PEP 302 meta-path finder so that ``from analysis.edge_effects import X``
transparently loads ``analysis.01_edge_effects.edge_effects``.
"""

from __future__ import annotations

import importlib
import sys
import types
from importlib.abc import MetaPathFinder
from importlib.machinery import ModuleSpec

_MODULE_MAP: dict[str, str] = {
    "edge_effects": "01_edge_effects",
    "edge_effects_data": "01_edge_effects",
    "edge_effects_report": "01_edge_effects",
}


class _AliasLoader:
    """Loader that imports the real module and registers it under the alias."""

    def __init__(self, real_name: str) -> None:
        self.real_name = real_name

    def create_module(self, spec: ModuleSpec) -> types.ModuleType | None:
        return None  # use default semantics

    def exec_module(self, module: types.ModuleType) -> None:
        real = importlib.import_module(self.real_name)
        module.__dict__.update(real.__dict__)
        module.__file__ = real.__file__
        module.__loader__ = real.__loader__


class _AnalysisRedirectFinder(MetaPathFinder):
    """Redirect ``analysis.<name>`` imports to ``analysis.<NN_phase>.<name>``."""

    def find_spec(
        self,
        fullname: str,
        path: object = None,
        target: types.ModuleType | None = None,
    ) -> ModuleSpec | None:
        parts = fullname.split(".")
        if len(parts) == 2 and parts[0] == "analysis" and parts[1] in _MODULE_MAP:
            name = parts[1]
            return ModuleSpec(fullname, _AliasLoader(f"analysis.{_MODULE_MAP[name]}.{name}"))
        return None


sys.meta_path.insert(0, _AnalysisRedirectFinder())
