"""
Pytest configuration and shared fixtures for regulon_inference tests.

The synthetic dataset has 100 genes: three TFs (A, B, C), ten co-expression
targets (G1-G10) and 87 background genes. TF A regulates G1-G6; its direct
motif "mA" ranks G1-G4 at the very top, its inferred motif "mA_inf" ranks
G5-G6 at the top, and 58 background motifs rank A's genes last.
"""

from pathlib import Path

import pandas as pd
import pytest
import yaml

from regulon_inference.databases import MotifAnnotations, MotifRankings

TFS = ["A", "B", "C"]
TARGETS = [f"G{i}" for i in range(1, 11)]
BACKGROUND = [f"BG{i:03d}" for i in range(1, 88)]
ALL_GENES = TFS + TARGETS + BACKGROUND

A_GENES = ["A", "G1", "G2", "G3", "G4", "G5", "G6"]
N_BACKGROUND_MOTIFS = 58
DB_NAME = "test_db"


def make_weight_matrix() -> pd.DataFrame:
    weights = pd.DataFrame(0.0, index=TFS, columns=TARGETS)
    for gene, w in zip(["G1", "G2", "G3", "G4", "G5", "G6"], [0.9, 0.8, 0.7, 0.6, 0.5, 0.4]):
        weights.loc["A", gene] = w
    for gene, w in zip(["G7", "G8", "G9", "G10"], [0.3, 0.25, 0.2, 0.15]):
        weights.loc["B", gene] = w
    for gene, w in zip(["G7", "G8", "G9", "G10"], [0.05, 0.04, 0.03, 0.02]):
        weights.loc["C", gene] = w
    # below the default weight floor
    weights.loc["C", "G1"] = 0.0005
    return weights


def make_correlation_matrix() -> pd.DataFrame:
    corr = pd.DataFrame(0.5, index=TFS, columns=TARGETS)
    corr.loc["C", "G10"] = -0.2
    return corr


def make_rankings() -> pd.DataFrame:
    others = sorted(g for g in ALL_GENES if g not in A_GENES)
    orders = {
        "mA": ["G1", "G2", "G3", "G4"] + others + ["G5", "G6", "A"],
        "mA_inf": ["G5", "G6"] + others + ["G1", "G2", "G3", "G4", "A"],
    }
    for k in range(1, N_BACKGROUND_MOTIFS + 1):
        orders[f"bg{k:02d}"] = others[k:] + others[:k] + A_GENES

    rows = {}
    for motif, order in orders.items():
        rows[motif] = {gene: rank for rank, gene in enumerate(order, start=1)}
    return pd.DataFrame.from_dict(rows, orient="index")[ALL_GENES].astype(int)


def make_annotations() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "motif": ["mA", "mA_inf"],
            "TF": ["A", "A"],
            "directAnnotation": [True, False],
        }
    )


@pytest.fixture
def weight_matrix():
    """Regulator x target weights of the synthetic network."""
    return make_weight_matrix()


@pytest.fixture
def correlation_matrix():
    """Regulator x target correlations; only C -> G10 is negative."""
    return make_correlation_matrix()


@pytest.fixture
def rankings():
    """One 60-motif ranking database over the 100 synthetic genes."""
    return MotifRankings(name=DB_NAME, rankings=make_rankings())


@pytest.fixture
def annotations():
    """mA directly and mA_inf indirectly annotated to TF A."""
    return MotifAnnotations(table=make_annotations())


@pytest.fixture
def a_gene_set():
    """TF A's module after adding the TF itself."""
    return frozenset(A_GENES)


@pytest.fixture
def pipeline_config_dict(tmp_path):
    """Config dict with every input written to ``tmp_path``."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()

    weights_path = data_dir / "weights.csv"
    make_weight_matrix().to_csv(weights_path)
    corr_path = data_dir / "correlation.csv"
    make_correlation_matrix().to_csv(corr_path)
    rankings_path = data_dir / f"{DB_NAME}.tsv"
    make_rankings().to_csv(rankings_path, sep="\t")
    annotations_path = data_dir / "annotations.csv"
    make_annotations().to_csv(annotations_path, index=False)

    return {
        "pipeline": {
            "name": "test_run",
            "output_dir": str(tmp_path / "output"),
            "verbose": False,
            "n_workers": 1,
        },
        "data": {
            "weight_matrix_path": str(weights_path),
            "correlation_matrix_path": str(corr_path),
        },
        "correlation": {"min_module_size": 3},
        "enrichment": {"nes_threshold": 3.0, "auc_max_rank_fraction": 0.1},
        "pruning": {"max_rank": 50, "method": "aprox"},
        "databases": {
            "organism": "hgnc",
            "registry": {
                "hgnc": {
                    "rankings": {DB_NAME: str(rankings_path)},
                    "annotations": str(annotations_path),
                }
            },
        },
    }


@pytest.fixture
def pipeline_config_path(tmp_path, pipeline_config_dict) -> Path:
    """The synthetic config written as YAML."""
    config_path = tmp_path / "config.yaml"
    with open(config_path, "w") as f:
        yaml.dump(pipeline_config_dict, f)
    return config_path
