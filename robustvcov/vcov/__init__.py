# robustvcov/vcov/__init__.py
"""Sandwich variance estimators and their input container."""
from .data import VcovData, make_vcov_data
from .methods import (
    ClusterData,
    SimpleData,
    VcovCluster,
    VcovMethod,
    VcovMethodData,
    VcovSimple,
    VcovWhite,
    WhiteData,
    allvars,
    parse_vcov,
    prepare_method,
    sandwich,
    shat,
    standard_errors,
    vcov,
)

__all__ = [
    "ClusterData",
    "SimpleData",
    "VcovCluster",
    "VcovData",
    "VcovMethod",
    "VcovMethodData",
    "VcovSimple",
    "VcovWhite",
    "WhiteData",
    "allvars",
    "make_vcov_data",
    "parse_vcov",
    "prepare_method",
    "sandwich",
    "shat",
    "standard_errors",
    "vcov",
]
