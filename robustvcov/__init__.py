"""robustvcov: Sandwich variance estimators and weak-identification rank test.

This package provides simple, heteroskedasticity-robust and multiway
cluster-robust variance-covariance estimates for linear regression
coefficients, plus the Kleibergen-Paap rank test for weak instruments.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "ClusterData",
    "DimensionError",
    "RankTestResult",
    "SimpleData",
    "SingularMatrixError",
    "VcovCluster",
    "VcovData",
    "VcovSimple",
    "VcovWhite",
    "WhiteData",
    "allvars",
    "make_vcov_data",
    "parse_vcov",
    "prepare_method",
    "rank_test",
    "sandwich",
    "shat",
    "standard_errors",
    "vcov",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "DimensionError": ("robustvcov.errors", "DimensionError"),
    "SingularMatrixError": ("robustvcov.errors", "SingularMatrixError"),
    "VcovData": ("robustvcov.vcov.data", "VcovData"),
    "make_vcov_data": ("robustvcov.vcov.data", "make_vcov_data"),
    "VcovSimple": ("robustvcov.vcov.methods", "VcovSimple"),
    "VcovWhite": ("robustvcov.vcov.methods", "VcovWhite"),
    "VcovCluster": ("robustvcov.vcov.methods", "VcovCluster"),
    "SimpleData": ("robustvcov.vcov.methods", "SimpleData"),
    "WhiteData": ("robustvcov.vcov.methods", "WhiteData"),
    "ClusterData": ("robustvcov.vcov.methods", "ClusterData"),
    "allvars": ("robustvcov.vcov.methods", "allvars"),
    "parse_vcov": ("robustvcov.vcov.methods", "parse_vcov"),
    "prepare_method": ("robustvcov.vcov.methods", "prepare_method"),
    "sandwich": ("robustvcov.vcov.methods", "sandwich"),
    "shat": ("robustvcov.vcov.methods", "shat"),
    "standard_errors": ("robustvcov.vcov.methods", "standard_errors"),
    "vcov": ("robustvcov.vcov.methods", "vcov"),
    "RankTestResult": ("robustvcov.ranktest", "RankTestResult"),
    "rank_test": ("robustvcov.ranktest", "rank_test"),
}


def __getattr__(name: str) -> Any:
    """Lazily import public estimators and utilities on first access."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'robustvcov' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Ensure dir() exposes lazily imported names."""
    return sorted(set(globals()) | set(__all__))
