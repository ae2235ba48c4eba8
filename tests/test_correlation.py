"""
Tests for the correlation split and module selection.
"""

import numpy as np
import pandas as pd
import pytest

from regulon_inference.config import ConfigError
from regulon_inference.correlation import (
    MissingCorrelationError,
    add_correlation,
    correlation_sign,
    gene_sets_from_frame,
    gene_sets_to_frame,
    select_activating_modules,
)
from regulon_inference.link_list import build_link_list
from regulon_inference.modules import build_tf_modules


@pytest.fixture
def tf_modules(weight_matrix):
    return build_tf_modules(build_link_list(weight_matrix).links)


class TestCorrelationSign:
    """Tests for correlation_sign."""

    def test_boundaries_are_exclusive(self):
        signs = correlation_sign(np.array([0.03, -0.03, 0.0300001, -0.0300001]))
        assert signs.tolist() == [0, 0, 1, -1]

    def test_nan_is_neutral(self):
        assert correlation_sign(np.array([np.nan])).tolist() == [0]

    def test_custom_thresholds(self):
        assert correlation_sign(np.array([0.2, -0.2]), 0.5, -0.1).tolist() == [0, -1]


class TestAddCorrelation:
    """Tests for add_correlation."""

    def test_sign_column(self, tf_modules, correlation_matrix):
        correlated = add_correlation(tf_modules, correlation_matrix)

        negative = correlated.loc[correlated["corr"] == -1, ["TF", "Target"]].drop_duplicates()
        assert negative.values.tolist() == [["C", "G10"]]
        assert len(correlated) == len(tf_modules)

    def test_missing_pair_raises(self, tf_modules, correlation_matrix):
        with pytest.raises(MissingCorrelationError) as exc_info:
            add_correlation(tf_modules, correlation_matrix.drop(columns=["G3"]))

        assert exc_info.value.missing_pairs == [("A", "G3")]
        assert "A->G3" in str(exc_info.value)

    def test_missing_tf_row_raises(self, tf_modules, correlation_matrix):
        with pytest.raises(MissingCorrelationError) as exc_info:
            add_correlation(tf_modules, correlation_matrix.drop(index=["B"]))

        assert exc_info.value.n_missing == 4

    def test_nan_value_is_neutral(self, tf_modules, correlation_matrix):
        correlation_matrix.loc["A", "G1"] = np.nan
        correlated = add_correlation(tf_modules, correlation_matrix)

        a_g1 = correlated.loc[(correlated["TF"] == "A") & (correlated["Target"] == "G1")]
        assert (a_g1["corr"] == 0).all()

    def test_invalid_thresholds(self, tf_modules, correlation_matrix):
        with pytest.raises(ConfigError):
            add_correlation(tf_modules, correlation_matrix, positive_threshold=-0.5)


class TestSelectActivatingModules:
    """Tests for select_activating_modules."""

    def test_tf_added_and_negative_dropped(self, tf_modules, correlation_matrix):
        correlated = add_correlation(tf_modules, correlation_matrix)
        result = select_activating_modules(correlated, min_module_size=3)

        assert result.gene_sets["A_w001"].genes == frozenset(
            {"A", "G1", "G2", "G3", "G4", "G5", "G6"}
        )
        assert result.gene_sets["C_top50"].genes == frozenset({"C", "G7", "G8", "G9"})

    def test_without_tf(self, tf_modules, correlation_matrix):
        correlated = add_correlation(tf_modules, correlation_matrix)
        result = select_activating_modules(correlated, min_module_size=3, include_tf=False)

        assert "A" not in result.gene_sets["A_w001"].genes

    def test_small_modules_dropped_and_counted(self, tf_modules, correlation_matrix):
        correlated = add_correlation(tf_modules, correlation_matrix)
        result = select_activating_modules(correlated, min_module_size=6)

        assert all(len(m) >= 6 for m in result.gene_sets.values())
        assert set(result.gene_sets) == {
            f"A_{m}"
            for m in ("w001", "w005", "top50", "top5PerTarget", "top10PerTarget", "top50PerTarget")
        }
        assert len(result.dropped_modules) == 12
        assert result.to_dict()["n_modules_too_small"] == 12

    def test_default_size_filter_drops_everything(self, tf_modules, correlation_matrix):
        correlated = add_correlation(tf_modules, correlation_matrix)
        result = select_activating_modules(correlated)

        assert result.n_modules_selected == 0
        assert result.n_modules_total == 18

    def test_duplicate_targets_counted_once(self):
        correlated = pd.DataFrame(
            {
                "Target": ["T1", "T1", "T2"],
                "TF": ["X", "X", "X"],
                "method": ["w001", "w001", "w001"],
                "corr": [1, 1, 1],
            }
        )
        result = select_activating_modules(correlated, min_module_size=3)

        assert len(result.gene_sets["X_w001"]) == 3


class TestGeneSetFrames:
    """Tests for storing gene sets as tables."""

    def test_frame_round_trip(self, tf_modules, correlation_matrix):
        correlated = add_correlation(tf_modules, correlation_matrix)
        gene_sets = select_activating_modules(correlated, min_module_size=3).gene_sets

        restored = gene_sets_from_frame(gene_sets_to_frame(gene_sets))

        assert restored == gene_sets
