"""
Tests for TF module construction.
"""

import numpy as np
import pandas as pd
import pytest

from regulon_inference.config import ConfigError
from regulon_inference.link_list import build_link_list
from regulon_inference.modules import (
    MODULE_COLUMNS,
    TFModule,
    build_tf_modules,
    module_methods,
    per_target_method_tag,
    summarize_modules,
    top_n_method_tag,
    weight_method_tag,
)


def module_targets(modules, tf, method):
    rows = modules.loc[(modules["TF"] == tf) & (modules["method"] == method)]
    return rows["Target"].tolist()


@pytest.fixture
def dense_links():
    """Twelve regulators with distinct weights on 80 targets."""
    rng = np.random.default_rng(7)
    weights = rng.uniform(0.002, 1.0, size=(12, 80))
    matrix = pd.DataFrame(
        weights,
        index=[f"TF{i}" for i in range(12)],
        columns=[f"T{j}" for j in range(80)],
    )
    return build_link_list(matrix).links


class TestMethodTags:
    """Tests for method tag naming."""

    def test_weight_tags(self):
        assert weight_method_tag(0.001) == "w001"
        assert weight_method_tag(0.005) == "w005"

    def test_top_tags(self):
        assert top_n_method_tag(50) == "top50"
        assert per_target_method_tag(10) == "top10PerTarget"

    def test_default_methods(self):
        assert module_methods() == [
            "w001",
            "w005",
            "top50",
            "top5PerTarget",
            "top10PerTarget",
            "top50PerTarget",
        ]


class TestBuildTFModules:
    """Tests for build_tf_modules."""

    def test_all_six_families(self, weight_matrix):
        modules = build_tf_modules(build_link_list(weight_matrix).links)

        assert list(modules.columns) == MODULE_COLUMNS
        assert set(modules["method"]) == set(module_methods())

    def test_weight_families(self):
        links = pd.DataFrame(
            {"TF": ["A", "A", "A"], "Target": ["T1", "T2", "T3"], "weight": [0.9, 0.004, 0.002]}
        )
        modules = build_tf_modules(links)

        assert module_targets(modules, "A", "w001") == ["T1", "T2", "T3"]
        assert module_targets(modules, "A", "w005") == ["T1"]

    def test_top_n_is_prefix_of_w001(self, dense_links):
        modules = build_tf_modules(dense_links)

        for tf in dense_links["TF"].unique():
            w001 = module_targets(modules, tf, "w001")
            top50 = module_targets(modules, tf, "top50")
            assert top50 == w001[:50]

    def test_top_n_fewer_than_n(self, weight_matrix):
        modules = build_tf_modules(build_link_list(weight_matrix).links)

        assert module_targets(modules, "A", "top50") == ["G1", "G2", "G3", "G4", "G5", "G6"]

    def test_per_target_tiers_nested(self, dense_links):
        modules = build_tf_modules(dense_links)

        for target in dense_links["Target"].unique():
            tiers = [
                set(modules.loc[(modules["Target"] == target) & (modules["method"] == m), "TF"])
                for m in ("top5PerTarget", "top10PerTarget", "top50PerTarget")
            ]
            assert len(tiers[0]) == 5
            assert len(tiers[1]) == 10
            assert tiers[0] <= tiers[1] <= tiers[2]

    def test_per_target_keeps_strongest_regulators(self, dense_links):
        modules = build_tf_modules(dense_links)
        target = "T0"

        expected = dense_links.loc[dense_links["Target"] == target].nlargest(5, "weight")["TF"]
        top5 = modules.loc[(modules["Target"] == target) & (modules["method"] == "top5PerTarget"), "TF"]
        assert set(top5) == set(expected)

    def test_per_target_fewer_than_k(self, weight_matrix):
        """A target with fewer than K regulators keeps all of them."""
        modules = build_tf_modules(build_link_list(weight_matrix).links)

        g7 = modules.loc[(modules["Target"] == "G7") & (modules["method"] == "top50PerTarget")]
        assert set(g7["TF"]) == {"B", "C"}

    def test_rejects_bad_parameters(self, weight_matrix):
        links = build_link_list(weight_matrix).links
        with pytest.raises(ConfigError):
            build_tf_modules(links, top_n_per_tf=0)
        with pytest.raises(ConfigError):
            build_tf_modules(links, top_k_per_target=[5, 5])
        with pytest.raises(ConfigError):
            build_tf_modules(links, min_weight=-1)

    def test_rejects_missing_columns(self):
        with pytest.raises(ConfigError, match="missing columns"):
            build_tf_modules(pd.DataFrame({"TF": ["A"], "Target": ["B"]}))


class TestTFModule:
    """Tests for the TFModule value type."""

    def test_name_and_size(self):
        module = TFModule(tf="SOX_10", method="top50", genes=frozenset({"a", "b"}))

        assert module.name == "SOX_10_top50"
        assert len(module) == 2


class TestSummarizeModules:
    """Tests for summarize_modules."""

    def test_summary_per_method(self, weight_matrix):
        modules = build_tf_modules(build_link_list(weight_matrix).links)
        summary = summarize_modules(modules)

        assert summary.loc["w001", "n_tfs"] == 3
        assert summary.loc["w001", "max"] == 6
        assert summary.loc["w001", "min"] == 4
