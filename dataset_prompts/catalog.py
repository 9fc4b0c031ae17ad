"""Pose catalog and draw pools loaded from the YAML files under ``data/``.

The catalog is read-only reference data. Poses keep the order they have in
``poses.yaml``; that order is the processing order of every batch.
"""

import os
from dataclasses import dataclass
from typing import Optional

import yaml

from dataset_studio.config import POSE_GROUP_CHOICES, DatasetGroup

DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")


@dataclass(frozen=True)
class PoseDefinition:
    """One target body/camera configuration."""
    id: str
    label: str
    group: str          # DatasetGroup value
    description: str

    @property
    def is_portrait(self) -> bool:
        return self.group == DatasetGroup.PORTRAIT.value


def _load_yaml(filepath: str) -> dict:
    with open(filepath, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data or {}


@dataclass
class PoseCatalog:
    """Ordered, immutable collection of pose definitions plus draw pools."""
    poses: tuple
    wardrobe: tuple = ()
    expressions: tuple = ()
    adjustment_options: Optional[dict] = None

    def __post_init__(self):
        seen = set()
        for pose in self.poses:
            if pose.group not in POSE_GROUP_CHOICES:
                raise ValueError(
                    f"Pose {pose.id!r} has unknown group {pose.group!r}"
                )
            if pose.id in seen:
                raise ValueError(f"Duplicate pose id {pose.id!r}")
            seen.add(pose.id)

    def __iter__(self):
        return iter(self.poses)

    def __len__(self) -> int:
        return len(self.poses)

    def get(self, pose_id: str) -> Optional[PoseDefinition]:
        for pose in self.poses:
            if pose.id == pose_id:
                return pose
        return None

    def ids(self) -> list:
        return [p.id for p in self.poses]

    def by_group(self, group: str) -> list:
        return [p for p in self.poses if p.group == group]

    def filter(self, pose_ids) -> list:
        """Return the selected poses in catalog order."""
        wanted = set(pose_ids)
        return [p for p in self.poses if p.id in wanted]

    def adjustment_value(self, name: str, value: str) -> str:
        """Match a character adjustment against its allowed options.

        Matching ignores case and returns the catalog spelling. A catalog
        without an option list for ``name`` accepts any value.

        Raises:
            ValueError: value is not one of the options
        """
        options = (self.adjustment_options or {}).get(name)
        if not options:
            return value
        for option in options:
            if str(option).lower() == value.strip().lower():
                return str(option)
        raise ValueError(
            f"Unknown {name} {value!r}, expected one of: {', '.join(map(str, options))}"
        )

    @classmethod
    def from_yaml(cls, poses_path: str, wardrobe_path: str = "",
                  expressions_path: str = "") -> "PoseCatalog":
        raw = _load_yaml(poses_path).get("poses", [])
        poses = tuple(
            PoseDefinition(
                id=str(entry["id"]),
                label=str(entry.get("label", entry["id"])),
                group=str(entry.get("group", "")),
                description=str(entry.get("description", "")).strip(),
            )
            for entry in raw
        )

        wardrobe = ()
        if wardrobe_path:
            wardrobe = tuple(_load_yaml(wardrobe_path).get("wardrobe", []))

        expressions = ()
        adjustment_options = None
        if expressions_path:
            data = _load_yaml(expressions_path)
            expressions = tuple(data.get("expressions", []))
            adjustment_options = data.get("adjustments")

        return cls(
            poses=poses,
            wardrobe=wardrobe,
            expressions=expressions,
            adjustment_options=adjustment_options,
        )

    @classmethod
    def load(cls, data_dir: str = "") -> "PoseCatalog":
        """Load the catalog from a data directory (the bundled one by default)."""
        data_dir = data_dir or DATA_DIR
        poses_path = os.path.join(data_dir, "poses.yaml")
        if not os.path.exists(poses_path):
            raise FileNotFoundError(f"No poses.yaml in {data_dir}")

        wardrobe_path = os.path.join(data_dir, "wardrobe.yaml")
        expressions_path = os.path.join(data_dir, "expressions.yaml")
        return cls.from_yaml(
            poses_path,
            wardrobe_path if os.path.exists(wardrobe_path) else "",
            expressions_path if os.path.exists(expressions_path) else "",
        )
