"""
Co-expression module construction.

Derives candidate target sets for every transcription factor from a sorted
link list, using complementary heuristics:

    - w001 / w005: all targets above an absolute weight threshold
    - top50: the strongest N targets of each TF
    - topKPerTarget: a target joins a TF's module when the TF is among the
      K strongest regulators of that target (K in 5, 10, 50 by default)

All families are returned as one long table of (Target, TF, method) rows.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Sequence

import pandas as pd

from .config import ConfigError, check_non_negative, check_positive_int, check_top_k_tiers

logger = logging.getLogger(__name__)

MODULE_COLUMNS = ["Target", "TF", "method"]


@dataclass(frozen=True)
class TFModule:
    """A candidate target gene set of one TF built by one method."""

    tf: str
    method: str
    genes: FrozenSet[str]

    @property
    def name(self) -> str:
        return f"{self.tf}_{self.method}"

    def __len__(self) -> int:
        return len(self.genes)


def weight_method_tag(threshold: float) -> str:
    """Method tag for an absolute weight threshold, e.g. 0.001 -> 'w001'."""
    if threshold >= 1:
        return f"w{threshold:g}"
    digits = f"{threshold:.6f}".rstrip("0").split(".")[1]
    return "w" + digits.ljust(3, "0")


def top_n_method_tag(n: int) -> str:
    return f"top{n}"


def per_target_method_tag(k: int) -> str:
    return f"top{k}PerTarget"


def module_methods(
    min_weight: float = 0.001,
    secondary_weight: float = 0.005,
    top_n_per_tf: int = 50,
    top_k_per_target: Sequence[int] = (5, 10, 50),
) -> List[str]:
    """Method tags in the order the module families are built."""
    return [
        weight_method_tag(min_weight),
        weight_method_tag(secondary_weight),
        top_n_method_tag(top_n_per_tf),
    ] + [per_target_method_tag(k) for k in sorted(top_k_per_target)]


def build_tf_modules(
    links: pd.DataFrame,
    min_weight: float = 0.001,
    secondary_weight: float = 0.005,
    top_n_per_tf: int = 50,
    top_k_per_target: Sequence[int] = (5, 10, 50),
) -> pd.DataFrame:
    """
    Build the six module families from a link list.

    Args:
        links: Link list with TF, Target, weight columns
        min_weight: Global weight floor (exclusive); defines the w001 family
        secondary_weight: Stricter weight threshold (exclusive); w005 family
        top_n_per_tf: Number of strongest targets kept per TF
        top_k_per_target: Tiers of strongest regulators kept per target

    Returns:
        DataFrame with Target, TF, method columns. Targets with fewer than K
        regulators keep all of them in the K tier.
    """
    min_weight = check_non_negative(min_weight, "modules.min_weight")
    secondary_weight = check_non_negative(secondary_weight, "modules.secondary_weight")
    check_positive_int(top_n_per_tf, "modules.top_n_per_tf")
    tiers = check_top_k_tiers(list(top_k_per_target))
    missing = [c for c in ("TF", "Target", "weight") if c not in links.columns]
    if missing:
        raise ConfigError(
            f"Link list is missing columns: {missing}",
            field="link_list",
            suggestions=["Build the link list with build_link_list()"],
        )

    ordered = links.loc[links["weight"] > min_weight]
    ordered = ordered.sort_values("weight", ascending=False, kind="mergesort")

    families = [
        (weight_method_tag(min_weight), ordered),
        (weight_method_tag(secondary_weight), ordered.loc[ordered["weight"] > secondary_weight]),
        (top_n_method_tag(top_n_per_tf), ordered.groupby("TF", sort=False).head(top_n_per_tf)),
    ]
    by_target = ordered.groupby("Target", sort=False)
    for k in tiers:
        families.append((per_target_method_tag(k), by_target.head(k)))

    frames = []
    for method, family in families:
        frame = family[["Target", "TF"]].copy()
        frame["method"] = method
        frames.append(frame)
        logger.info(
            f"[Modules] {method}: {len(frame)} links across {frame['TF'].nunique()} TFs"
        )

    modules = pd.concat(frames, ignore_index=True)
    return modules[MODULE_COLUMNS]


def summarize_modules(modules: pd.DataFrame) -> pd.DataFrame:
    """
    Module size statistics per method.

    Returns:
        DataFrame indexed by method with n_tfs and min/median/mean/max
        module size (unique targets per TF).
    """
    sizes = modules.groupby(["method", "TF"], sort=False)["Target"].nunique()
    summary = sizes.groupby(level="method", sort=False).agg(
        n_tfs="size", min="min", median="median", mean="mean", max="max"
    )
    return summary
