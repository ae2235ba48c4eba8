"""
Storage for named pipeline artifacts.

Every pipeline stage writes its output under a distinct name, so a run can
be resumed from the last stage that completed. Two stores are provided:

    - InMemoryArtifactStore: plain dict, used by tests and library callers
    - DirectoryArtifactStore: one file per artifact in a directory
      (DataFrames pickled with pandas, regulon dicts as JSON)
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

logger = logging.getLogger(__name__)


class ArtifactStore(ABC):
    """Interface shared by the artifact stores."""

    @abstractmethod
    def save(self, name: str, artifact: Any) -> None:
        """Store an artifact under a name, replacing any previous one."""

    @abstractmethod
    def load(self, name: str) -> Any:
        """Return a stored artifact; raises KeyError if absent."""

    @abstractmethod
    def exists(self, name: str) -> bool:
        pass

    @abstractmethod
    def names(self) -> List[str]:
        pass


class InMemoryArtifactStore(ArtifactStore):
    """Artifacts kept in a dict for the lifetime of the store."""

    def __init__(self):
        self._artifacts: Dict[str, Any] = {}

    def save(self, name: str, artifact: Any) -> None:
        self._artifacts[name] = artifact

    def load(self, name: str) -> Any:
        if name not in self._artifacts:
            raise KeyError(f"No artifact named '{name}'")
        return self._artifacts[name]

    def exists(self, name: str) -> bool:
        return name in self._artifacts

    def names(self) -> List[str]:
        return sorted(self._artifacts)


class DirectoryArtifactStore(ArtifactStore):
    """
    One file per artifact under ``root``.

    DataFrames are stored as ``<name>.pkl`` (pandas pickle, keeps list-valued
    columns and dtypes intact); dicts and lists are stored as ``<name>.json``.
    """

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str, suffix: str) -> Path:
        return self.root / f"{name}{suffix}"

    def save(self, name: str, artifact: Any) -> None:
        if isinstance(artifact, pd.DataFrame):
            path = self._path(name, ".pkl")
            artifact.to_pickle(path)
        elif isinstance(artifact, (dict, list)):
            path = self._path(name, ".json")
            with open(path, "w") as f:
                json.dump(artifact, f, indent=2)
        else:
            raise TypeError(
                f"Cannot store artifact '{name}' of type {type(artifact).__name__}; "
                "expected a DataFrame, dict or list"
            )
        logger.debug(f"Saved artifact {name}: {path}")

    def load(self, name: str) -> Any:
        pkl = self._path(name, ".pkl")
        if pkl.exists():
            return pd.read_pickle(pkl)
        json_path = self._path(name, ".json")
        if json_path.exists():
            with open(json_path) as f:
                return json.load(f)
        raise KeyError(f"No artifact named '{name}' in {self.root}")

    def exists(self, name: str) -> bool:
        return self._path(name, ".pkl").exists() or self._path(name, ".json").exists()

    def names(self) -> List[str]:
        return sorted(
            p.stem for p in self.root.iterdir() if p.suffix in (".pkl", ".json")
        )
