"""Global configuration for the pose dataset studio.

Provider model names, output locations, generation defaults and the fixed
prompt vocabulary shared by the composer and the client live here.
"""

import os
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Optional

import yaml


class Resolution(Enum):
    ONE_K = "1K"
    TWO_K = "2K"
    FOUR_K = "4K"


class AspectRatio(Enum):
    SQUARE = "1:1"
    PORTRAIT_3_4 = "3:4"
    LANDSCAPE_4_3 = "4:3"
    PORTRAIT_9_16 = "9:16"
    LANDSCAPE_16_9 = "16:9"


class DatasetGroup(Enum):
    PORTRAIT = "portrait"
    UPPER = "upper"
    FULL = "full"


POSE_GROUP_CHOICES = [g.value for g in DatasetGroup]


class ProfileMode(Enum):
    AUTO = "auto"
    MANUAL = "manual"


class TaskStatus(Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.STOPPED)


# Full-body poses need the taller frame; everything else is square.
GROUP_ASPECT_RATIOS = {
    DatasetGroup.PORTRAIT: AspectRatio.SQUARE,
    DatasetGroup.UPPER: AspectRatio.SQUARE,
    DatasetGroup.FULL: AspectRatio.PORTRAIT_3_4,
}


@dataclass
class ModelConfig:
    """Gemini model ids for the two provider calls."""
    analysis: str = "gemini-2.5-flash"
    image: str = "gemini-3-pro-image-preview"


@dataclass
class OutputConfig:
    """Where the CLI writes the images it receives."""
    base_dir: str = "output"
    format: str = "png"

    def project_dir(self, project_name: str) -> str:
        return os.path.join(self.base_dir, project_name)


@dataclass
class StudioConfig:
    """Master configuration combining all sub-configs."""
    models: ModelConfig = field(default_factory=ModelConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    project_name: str = "Character_Alpha"
    default_resolution: str = Resolution.ONE_K.value
    # Empty means the catalog bundled with dataset_prompts
    catalog_dir: str = ""

    # Checked in order; the first non-empty variable wins
    api_key_env: tuple = ("GEMINI_API_KEY", "GOOGLE_API_KEY")

    @property
    def resolution(self) -> Resolution:
        return Resolution(self.default_resolution)

    def api_key(self) -> Optional[str]:
        for name in self.api_key_env:
            value = os.environ.get(name, "").strip()
            if value:
                return value
        return None

    @classmethod
    def from_yaml(cls, filepath: str) -> "StudioConfig":
        """Build a config from defaults overlaid with a YAML file."""
        with open(filepath, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        config = cls()
        _overlay(config, data)
        # Fail early on typos like "8K"
        Resolution(config.default_resolution)
        return config


def _overlay(target, data: dict) -> None:
    known = {f.name for f in fields(target)}
    for key, value in data.items():
        if key not in known:
            raise ValueError(f"Unknown config key {key!r} for {type(target).__name__}")
        current = getattr(target, key)
        if is_dataclass(current) and isinstance(value, dict):
            _overlay(current, value)
        elif isinstance(current, tuple) and isinstance(value, list):
            setattr(target, key, tuple(value))
        else:
            setattr(target, key, value)


# -----------------------------------------------------------------------------
# PROMPT VOCABULARY
# -----------------------------------------------------------------------------

PRODUCTION_HEADER = "DATASET PRODUCTION."

ENVIRONMENT_CLAUSE = (
    "ENVIRONMENT: Professional neutral high-key studio, seamless gray backdrop. "
    "8k resolution, high detail."
)

PORTRAIT_FRAMING = (
    "85mm lens, tight headshot, shoulder-up framing only, "
    "clear facial features, bokeh studio background"
)
STANDARD_FRAMING = "Professional framing, standard lens"

# Full-body poses without an expression cue get this instead of a random draw
NEUTRAL_EXPRESSION = "neutral gaze"

# A pose description containing any of these already dictates the expression
EXPRESSION_KEYWORDS = (
    "smile", "smirk", "laugh", "teeth", "wink", "gaze",
    "thoughtful", "serene", "nose", "lip", "joy", "fear",
    "anxious", "vulnerable", "stern", "desperate", "exhaustion",
    "concentrated", "neutral", "stoic", "pensive", "rembrandt",
)

# Portrait identity text loses any sentence mentioning these
BODY_SHAPE_TERMS = ("body build", "proportion", "waist")

ANALYSIS_INSTRUCTION = """Analyze the character identity in this image for a LoRA training dataset.
EXCLUDE POSE AND ENVIRONMENT. Use strictly technical, literal language.

CRITICAL: DO NOT hallucinate minor skin marks, moles, freckles, or temporary blemishes unless they are extremely prominent and defining permanent character features. Focus on clear, repeatable traits.

Focus exclusively on:
1. Biological/Physical features: Face shape (e.g., oval, heart), precise eye shape, lip thickness, skin tone.
2. Hair: BE PRECISE about length relative to body (e.g., 'bottom of ears', 'touching shoulders', 'mid-back'). Describe texture (straight, wavy, curly), and exact base color + highlights.
3. Body build: Describe shoulder width, waist ratio, and limb tone.

Respond with a factual identity profile. Formatting: HAIR: [details]. FACE: [details]. BODY: [details]."""

DEFAULT_ANALYSIS_RESULT = "A detailed character profile."
