"""Variance estimation methods: simple, White, and multiway cluster.

A *method* (:class:`VcovSimple`, :class:`VcovWhite`, :class:`VcovCluster`)
is configuration chosen when the analysis is set up. :func:`prepare_method`
binds it to a table once, producing *method data* (:class:`SimpleData`,
:class:`WhiteData`, :class:`ClusterData`) that can be reused across many
:func:`shat` / :func:`vcov` calls on different :class:`VcovData` instances.

The set of methods is closed; :func:`shat` and :func:`vcov` dispatch on the
method-data type and reject anything else.

References
----------
White, H. (1980). A Heteroskedasticity-Consistent Covariance Matrix Estimator
and a Direct Test for Heteroskedasticity. Econometrica 48(4).
Cameron, A. C., Gelbach, J. B., & Miller, D. L. (2011). Robust Inference With
Multiway Clustering. Journal of Business & Economic Statistics 29(2).
Petersen, M. A. (2009). Estimating Standard Errors in Finance Panel Data Sets.
Thompson, S. B. (2011). Simple formulas for standard errors that cluster by
both firm and time. Journal of Financial Economics 99(1).
"""

from __future__ import annotations

import itertools
import logging
import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

import numpy as np
import pandas as pd

from robustvcov.core import grouping
from robustvcov.core import linalg as la
from robustvcov.core.linalg import sandwich

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from .data import VcovData

LOGGER = logging.getLogger(__name__)

__all__ = [
    "ClusterData",
    "SimpleData",
    "VcovCluster",
    "VcovMethod",
    "VcovMethodData",
    "VcovSimple",
    "VcovWhite",
    "WhiteData",
    "allvars",
    "cluster_subsets",
    "helper_cluster",
    "parse_vcov",
    "prepare_method",
    "sandwich",
    "shat",
    "standard_errors",
    "subset_sign",
    "vcov",
]


# ---------------------------------------------------------------------
# Method specifications
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class VcovSimple:
    """Homoskedastic standard errors."""


@dataclass(frozen=True)
class VcovWhite:
    """Heteroskedasticity-robust (Eicker-Huber-White) standard errors."""


@dataclass(frozen=True)
class VcovCluster:
    """Cluster-robust standard errors over one or more grouping variables.

    ``clusters`` may be a single column name or an ordered sequence of
    names; several names request multiway clustering. The stored value is
    always a tuple of names.
    """

    clusters: str | Sequence[str]

    def __post_init__(self) -> None:
        raw = self.clusters
        names = (raw,) if isinstance(raw, str) else tuple(raw)
        if not names:
            raise ValueError("VcovCluster requires at least one cluster variable.")
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate cluster variables in {list(names)}.")
        object.__setattr__(self, "clusters", names)


VcovMethod = Union[VcovSimple, VcovWhite, VcovCluster]


def allvars(method: VcovMethod) -> tuple[str, ...]:
    """Variables the method needs from the source table."""
    if isinstance(method, VcovCluster):
        return tuple(method.clusters)
    if isinstance(method, (VcovSimple, VcovWhite)):
        return ()
    raise TypeError(f"Unknown variance method {type(method).__name__}.")


_SIMPLE_KEYS = {"simple", "iid", "homoskedastic"}
_WHITE_KEYS = {"white", "robust", "hetero", "hc1"}
_CLUSTER_RE = re.compile(r"^\s*cluster\s*\((?P<names>[^)]*)\)\s*$", re.IGNORECASE)


def parse_vcov(option: str | Mapping[str, Any] | VcovMethod) -> VcovMethod:
    """Translate a user-facing vcov option into a method specification.

    Accepted forms: ``"simple"``/``"iid"``, ``"white"``/``"robust"``/
    ``"hetero"``/``"HC1"``, ``"cluster(firm year)"`` or ``"cluster(firm+year)"``,
    and ``{"cluster": "firm"}`` / ``{"cluster": ["firm", "year"]}``. Method
    instances are returned unchanged.
    """
    if isinstance(option, (VcovSimple, VcovWhite, VcovCluster)):
        return option
    if isinstance(option, Mapping):
        if set(option) != {"cluster"}:
            raise ValueError(f"Unsupported vcov mapping {dict(option)!r}; expected {{'cluster': names}}.")
        return VcovCluster(option["cluster"])
    if isinstance(option, str):
        key = option.strip().lower()
        if key in _SIMPLE_KEYS:
            return VcovSimple()
        if key in _WHITE_KEYS:
            return VcovWhite()
        m = _CLUSTER_RE.match(option)
        if m is not None:
            names = [t for t in re.split(r"[\s+,]+", m.group("names")) if t]
            return VcovCluster(tuple(names))
    raise ValueError(f"Unsupported vcov specification {option!r}.")


# ---------------------------------------------------------------------
# Prepared (dataset-bound) method data
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class SimpleData:
    pass


@dataclass(frozen=True)
class WhiteData:
    pass


@dataclass(frozen=True, eq=False)
class ClusterData:
    """Materialized cluster codes.

    Attributes
    ----------
    clusters : pandas.DataFrame
        One int64 column of consecutive codes per cluster variable, in the
        declared order.
    size : dict[str, int]
        Number of distinct groups per cluster variable.

    """

    clusters: pd.DataFrame
    size: dict[str, int]

    def __post_init__(self) -> None:
        if self.clusters.shape[1] == 0:
            raise ValueError("ClusterData requires at least one cluster variable.")
        missing = [name for name in self.clusters.columns if name not in self.size]
        if missing:
            raise ValueError(f"ClusterData is missing group counts for {missing}.")

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.clusters.columns)


VcovMethodData = Union[SimpleData, WhiteData, ClusterData]


def prepare_method(method: VcovMethod, table: pd.DataFrame | None = None) -> VcovMethodData:
    """Bind a method specification to a table.

    Cluster variables must be categorical columns of ``table``; cardinalities
    count only the rows present in ``table``, so subset the table before
    preparing.

    Raises
    ------
    KeyError
        A declared cluster variable is missing from ``table``.
    TypeError
        A declared cluster variable is not categorical.

    """
    if isinstance(method, VcovSimple):
        return SimpleData()
    if isinstance(method, VcovWhite):
        return WhiteData()
    if not isinstance(method, VcovCluster):
        raise TypeError(f"Unknown variance method {type(method).__name__}.")
    if table is None:
        raise ValueError("Cluster standard errors require the source table.")
    codes: dict[str, NDArray[np.int64]] = {}
    size: dict[str, int] = {}
    for name in method.clusters:
        if name not in table.columns:
            msg = f"Cluster variable '{name}' not found in table."
            raise KeyError(msg)
        codes[name], size[name] = grouping.codes_from_column(table[name], name)
    LOGGER.debug("Prepared cluster data for %s with sizes %s", list(method.clusters), size)
    clusters = pd.DataFrame(codes, index=table.index, columns=list(method.clusters))
    return ClusterData(clusters, size)


# ---------------------------------------------------------------------
# Meat matrices
# ---------------------------------------------------------------------


def _scores(x: VcovData) -> NDArray[np.float64]:
    """Per-observation score rows: X*u for vector residuals, kron rows otherwise."""
    if x.residual_rank == 1:
        return la.hadamard(x.regressors, x.residuals.reshape(-1, 1))
    return la.row_kron(x.regressors, x.residuals)


def subset_sign(subset: Sequence[Any]) -> float:
    """Inclusion-exclusion sign ``(-1)^(|subset|+1)``."""
    return 1.0 if len(subset) % 2 == 1 else -1.0


def cluster_subsets(names: Sequence[str]) -> Iterator[tuple[tuple[str, ...], float]]:
    """Yield every non-empty subset of ``names`` with its inclusion-exclusion sign.

    Subsets come in increasing size, each size following the declared order
    of the names.
    """
    for r in range(1, len(names) + 1):
        for c in itertools.combinations(names, r):
            yield c, subset_sign(c)


def helper_cluster(
    scores: NDArray[np.float64], codes: NDArray[np.int64], size: int,
) -> NDArray[np.float64]:
    """Cluster meat for one grouping: ``G/(G-1) * sum_g s_g s_g'``.

    With one observation per group this is the White meat ``scores'scores``
    without the finite-sample factor (Petersen 2009; Thompson 2011).
    """
    n = scores.shape[0]
    if size == n:
        return la.tdot(scores)
    if size < 2:
        msg = (
            f"Cluster-robust meat requires at least two groups; got {size}. "
            "The G/(G-1) correction is undefined for a single cluster."
        )
        raise ValueError(msg)
    summed = la.group_sum(scores, codes, size)
    return la.tdot(summed) * (size / (size - 1))


def _shat_cluster(v: ClusterData, x: VcovData) -> NDArray[np.float64]:
    # Cameron, Gelbach, & Miller (2011).
    scores = _scores(x)
    dim = scores.shape[1]
    S = np.zeros((dim, dim), dtype=np.float64)
    for c, sign in cluster_subsets(v.names):
        if len(c) == 1:
            # no need to group in this case
            codes = v.clusters[c[0]].to_numpy(dtype=np.int64)
            size = v.size[c[0]]
        else:
            codes, size = grouping.group_codes([v.clusters[name].to_numpy() for name in c])
        LOGGER.debug("Cluster term %s: sign=%+.0f size=%d", c, sign, size)
        S += sign * helper_cluster(scores, codes, size)
    return S


def shat(v: VcovMethodData, x: VcovData) -> NDArray[np.float64]:
    """Meat matrix of the sandwich for method data ``v``.

    ``x`` is not modified.
    """
    if isinstance(v, SimpleData):
        rss = float(np.sum(x.residuals**2))
        return np.linalg.inv(x.invcrossmatrix) * rss
    if isinstance(v, WhiteData):
        return la.tdot(_scores(x))
    if isinstance(v, ClusterData):
        if len(v.clusters) != x.nobs:
            msg = (
                f"Cluster codes cover {len(v.clusters)} rows but the data has {x.nobs}; "
                "prepare the method on the estimation sample."
            )
            raise ValueError(msg)
        return _shat_cluster(v, x)
    raise TypeError(f"Unknown variance method data {type(v).__name__}.")


def vcov(v: VcovMethodData, x: VcovData) -> NDArray[np.float64]:
    """Variance-covariance matrix of the coefficients.

    Consumes ``x.invcrossmatrix``: for simple standard errors the bread is
    scaled in place and returned, so it must not be reused afterwards.
    White uses the ``n / df`` correction and cluster uses ``(n - 1) / df``.
    """
    if isinstance(v, SimpleData):
        H = x.invcrossmatrix
        H *= float(np.sum(x.residuals**2)) / x.df_residual
        return H
    if isinstance(v, WhiteData):
        S = shat(v, x)
        S *= x.nobs / x.df_residual
        return sandwich(x.invcrossmatrix, S)
    if isinstance(v, ClusterData):
        S = shat(v, x)
        S *= (x.nobs - 1) / x.df_residual
        return sandwich(x.invcrossmatrix, S)
    raise TypeError(f"Unknown variance method data {type(v).__name__}.")


def standard_errors(v: VcovMethodData, x: VcovData) -> NDArray[np.float64]:
    """Square roots of the diagonal of :func:`vcov` (consumes the bread)."""
    return np.sqrt(np.diag(vcov(v, x)))
