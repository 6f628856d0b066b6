import pytest
import numpy as np
import pandas as pd
from robustvcov.core import grouping

# ---------------------------------------------------------------------
# Unit Tests: Categorical codes
# ---------------------------------------------------------------------

def test_codes_from_column_consecutive():
    s = pd.Series(pd.Categorical(["b", "a", "b", "c"]), name="firm")
    codes, size = grouping.codes_from_column(s)
    assert size == 3
    assert codes.dtype == np.int64
    # same label -> same code, distinct labels -> distinct codes
    assert codes[0] == codes[2]
    assert len(set(codes.tolist())) == 3
    assert set(codes.tolist()) == {0, 1, 2}

def test_codes_from_column_counts_present_rows_only():
    s = pd.Series(pd.Categorical(["a", "b", "c", "c"]))
    sub = s.iloc[2:]
    # the categories survive subsetting, the rows do not
    assert len(sub.cat.categories) == 3
    codes, size = grouping.codes_from_column(sub, "firm")
    assert size == 1
    assert np.array_equal(codes, [0, 0])

def test_codes_from_column_rejects_non_categorical():
    s = pd.Series([1, 2, 2, 3], name="year")
    with pytest.raises(TypeError, match="Cluster variable 'year'"):
        grouping.codes_from_column(s)

def test_codes_from_column_rejects_missing():
    s = pd.Series(pd.Categorical(["a", None, "b"]), name="firm")
    with pytest.raises(ValueError, match="has NA"):
        grouping.codes_from_column(s)

# ---------------------------------------------------------------------
# Unit Tests: Intersections
# ---------------------------------------------------------------------

def test_group_codes_intersection():
    c1 = np.array([0, 0, 1, 1, 0])
    c2 = np.array([0, 1, 0, 1, 0])
    codes, size = grouping.group_codes([c1, c2])
    assert size == 4
    assert codes[0] == codes[4]
    assert len(set(codes[:4].tolist())) == 4
    # matrix input gives the same grouping
    codes_m, size_m = grouping.group_codes(np.column_stack([c1, c2]))
    assert size_m == size
    assert np.array_equal(codes_m, codes)

def test_group_codes_nested():
    firm = np.array([0, 0, 1, 1, 2])
    industry = np.array([0, 0, 0, 0, 1])
    _codes, size = grouping.group_codes([firm, industry])
    assert size == 3
