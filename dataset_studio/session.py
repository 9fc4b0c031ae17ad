"""Studio session: the in-memory state a batch reads and updates.

Holds the reference image, profile inputs, lock toggles, the selection set,
the gallery ("bin"), failed assets and the current generation task. The
batch pipeline receives the session by reference and is its only writer
while a task is generating.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Optional

from .config import ProfileMode, Resolution, TaskStatus
from . import profile

from dataset_prompts.engine import CharacterAdjustments

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class GeneratedImage:
    """One successful synthesis result."""
    id: str
    url: str                  # data URI
    prompt: str               # exact text sent to the provider
    timestamp: int            # epoch milliseconds
    group: Optional[str] = None
    pose_id: str = ""


@dataclass(frozen=True)
class FailedAsset:
    """One non-fatal synthesis failure."""
    id: str
    label: str
    message: str
    prompt: str
    timestamp: int


@dataclass
class GenerationTask:
    status: TaskStatus = TaskStatus.PENDING
    total: int = 0
    current: int = 0
    images: list = field(default_factory=list)  # newest first
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass
class StudioSession:
    """Everything the user has set up for the next batch."""
    project_name: str = "Character_Alpha"
    reference_image: Optional[bytes] = None
    profile_mode: ProfileMode = ProfileMode.AUTO
    auto_profile: Optional[str] = None
    manual_profile: str = ""
    adjustments: CharacterAdjustments = field(default_factory=CharacterAdjustments)
    hair_locked: bool = True
    body_locked: bool = False
    resolution: Resolution = Resolution.ONE_K
    authorized: bool = False

    selected_pose_ids: set = field(default_factory=set)
    gallery: list = field(default_factory=list)         # newest first
    failed_assets: list = field(default_factory=list)   # newest first
    task: GenerationTask = field(default_factory=GenerationTask)

    # -------------------------------------------------------------------------
    # PROFILE
    # -------------------------------------------------------------------------

    def active_profile(self) -> Optional[str]:
        return profile.active_profile(
            self.profile_mode, self.auto_profile, self.manual_profile
        )

    def is_profile_ready(self) -> bool:
        return profile.is_ready(
            self.profile_mode, self.auto_profile, self.manual_profile
        )

    @property
    def is_busy(self) -> bool:
        return self.task.status is TaskStatus.GENERATING

    def load_reference(self, image_path: str) -> bytes:
        """Read the reference image from disk, replacing any previous one."""
        if not os.path.exists(image_path):
            raise FileNotFoundError(f"Reference image not found: {image_path}")
        with open(image_path, "rb") as f:
            self.reference_image = f.read()
        # A new reference invalidates the previous analysis
        self.auto_profile = None
        logger.info(f"Loaded reference {image_path} ({len(self.reference_image)} bytes)")
        return self.reference_image

    # -------------------------------------------------------------------------
    # SELECTION
    # -------------------------------------------------------------------------

    def select_all(self, catalog) -> None:
        self.selected_pose_ids = set(catalog.ids())

    def select(self, pose_ids) -> None:
        self.selected_pose_ids = set(pose_ids)

    def toggle_pose(self, pose_id: str) -> None:
        if pose_id in self.selected_pose_ids:
            self.selected_pose_ids.discard(pose_id)
        else:
            self.selected_pose_ids.add(pose_id)

    def toggle_group(self, catalog, group: str) -> None:
        """Select a whole group, or clear it if it is already fully selected."""
        group_ids = {p.id for p in catalog.by_group(group)}
        if group_ids and group_ids <= self.selected_pose_ids:
            self.selected_pose_ids -= group_ids
        else:
            self.selected_pose_ids |= group_ids

    # -------------------------------------------------------------------------
    # GALLERY
    # -------------------------------------------------------------------------

    def delete_image(self, image_id: str) -> bool:
        before = len(self.gallery)
        self.gallery = [img for img in self.gallery if img.id != image_id]
        return len(self.gallery) != before

    def gallery_by_group(self) -> dict:
        grouped = {}
        for img in self.gallery:
            grouped.setdefault(img.group or "default", []).append(img)
        return grouped

    def clear_bin(self) -> None:
        """Empty the gallery and forget the last task and its failures."""
        self.gallery = []
        self.task = GenerationTask()
        self.failed_assets = []

    def reset_workspace(self) -> None:
        """Start over with a new character. The gallery is kept."""
        self.reference_image = None
        self.auto_profile = None
        self.manual_profile = ""
        self.task = GenerationTask()
        self.selected_pose_ids = set()
        self.failed_assets = []
        self.hair_locked = True
        self.body_locked = False
