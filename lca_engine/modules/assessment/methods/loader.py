"""YAML-based characterization factor set registry.

Each impact-assessment method (ReCiPe, CML, TRACI, ILCD, ...) is one YAML
file of category definitions and factor tables. Methods differ only in these
tables; the computation is shared.
"""

from __future__ import annotations

from importlib import resources as importlib_resources
from pathlib import Path
from typing import Any

import yaml

from lca_engine.core.logging import get_logger
from lca_engine.modules.assessment.errors import UnknownMethodError
from lca_engine.modules.assessment.schemas import (
    CharacterizationFactor,
    CharacterizationFactorSet,
    ImpactCategory,
    MethodSummary,
    normalise_flow_key,
)

logger = get_logger(__name__)


class MethodRegistry:
    """Characterization factor sets keyed by method name.

    Usage::

        registry = MethodRegistry()
        recipe = registry.get("ReCiPe")
        registry.list_methods()
    """

    def __init__(self, methods_dir: str | Path | None = None) -> None:
        self._methods: dict[str, CharacterizationFactorSet] = {}
        self._load(methods_dir)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, method: str) -> CharacterizationFactorSet:
        """Case-insensitive lookup of a factor set.

        Raises:
            UnknownMethodError: No method is registered under *method*.
        """
        found = self._methods.get(method.lower().strip())
        if found is None:
            raise UnknownMethodError(
                f"Unknown impact-assessment method '{method}'. "
                f"Available: {', '.join(self.list_methods()) or 'none'}"
            )
        return found

    def list_methods(self) -> list[str]:
        """Return the display names of all loaded methods (sorted)."""
        return sorted(fs.method for fs in self._methods.values())

    def summaries(self) -> list[MethodSummary]:
        return [
            MethodSummary(
                name=fs.method,
                version=fs.version,
                primary_category=fs.primary_category,
                categories=list(fs.categories),
                factor_count=len(fs.factors),
            )
            for fs in sorted(self._methods.values(), key=lambda fs: fs.method)
        ]

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self, methods_dir: str | Path | None = None) -> None:
        """Load every ``*.yaml`` method file in *methods_dir*."""
        directory = Path(methods_dir) if methods_dir is not None else self._default_dir()

        if not directory.is_dir():
            logger.warning("methods_directory_not_found", path=str(directory))
            return

        for path in sorted(directory.glob("*.yaml")):
            with open(path, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
            factor_set = self._parse(data, path)
            if factor_set is None:
                continue
            self._methods[factor_set.method.lower()] = factor_set
            logger.info(
                "method_loaded",
                method=factor_set.method,
                version=factor_set.version,
                categories=len(factor_set.categories),
                factor_count=len(factor_set.factors),
                path=path.name,
            )

    @staticmethod
    def _parse(data: Any, path: Path) -> CharacterizationFactorSet | None:
        if not isinstance(data, dict) or not data.get("method"):
            logger.warning("invalid_method_file", path=str(path))
            return None

        categories: list[ImpactCategory] = []
        for raw in data.get("categories") or []:
            if isinstance(raw, dict) and raw.get("name"):
                categories.append(
                    ImpactCategory(name=str(raw["name"]), unit=str(raw.get("unit", "")))
                )
        known = {c.name for c in categories}

        primary = str(data.get("primary_category", ""))
        if primary not in known:
            logger.warning(
                "invalid_primary_category",
                method=data["method"],
                primary_category=primary,
                path=str(path),
            )
            return None

        factors: dict[str, tuple[CharacterizationFactor, ...]] = {}
        for raw in data.get("factors") or []:
            if not isinstance(raw, dict):
                continue
            try:
                values = [
                    CharacterizationFactor(category=str(category), factor=float(value))
                    for category, value in (raw.get("values") or {}).items()
                ]
            except (ValueError, TypeError):
                logger.warning(
                    "skipping_invalid_characterization_factor",
                    method=data["method"],
                    flow=raw.get("flow") or raw.get("name"),
                    exc_info=True,
                )
                continue
            unknown = [v.category for v in values if v.category not in known]
            if unknown:
                logger.warning(
                    "skipping_factor_for_unknown_category",
                    method=data["method"],
                    flow=raw.get("flow") or raw.get("name"),
                    categories=unknown,
                )
                continue
            for key in _factor_keys(raw):
                factors[key] = tuple(values)

        return CharacterizationFactorSet(
            method=str(data["method"]),
            version=str(data.get("version", "0.0")),
            primary_category=primary,
            categories=tuple(categories),
            factors=factors,
        )

    @staticmethod
    def _default_dir() -> Path:
        """Resolve the method files bundled with this package."""
        pkg = importlib_resources.files("lca_engine.modules.assessment.methods")
        return Path(str(pkg))


def _factor_keys(raw: dict[str, Any]) -> list[str]:
    """Lookup keys for a factor entry: flow id and/or name(+compartment)."""
    keys: list[str] = []
    if raw.get("flow"):
        keys.append(normalise_flow_key(str(raw["flow"])))
    if raw.get("name"):
        name = normalise_flow_key(str(raw["name"]))
        if raw.get("compartment"):
            keys.append(f"{name}|{normalise_flow_key(str(raw['compartment']))}")
        else:
            keys.append(name)
    return keys
