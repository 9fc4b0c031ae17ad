"""Prompt composer for pose dataset synthesis.

Builds one complete synthesis instruction per pose by combining:
1. An orientation directive inferred from the pose description
2. The target pose text and a group-specific framing directive
3. An expression (drawn, fixed, or left to the pose itself)
4. A wardrobe entry drawn from the catalog pool
5. The identity constraints, with hair/body locks applied
6. Fixed studio environment boilerplate

Randomness is limited to the expression and wardrobe draws, and both go
through an injected draw function so a seeded composer is reproducible.
"""

import random
import re
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from dataset_studio.config import (
    BODY_SHAPE_TERMS, ENVIRONMENT_CLAUSE, EXPRESSION_KEYWORDS,
    GROUP_ASPECT_RATIOS, NEUTRAL_EXPRESSION, PORTRAIT_FRAMING,
    PRODUCTION_HEADER, STANDARD_FRAMING,
    DatasetGroup, Resolution,
)
from dataset_prompts.catalog import PoseDefinition

HAIR_PATTERN = re.compile(r"HAIR:\s*([^.]+)", re.IGNORECASE)
SENTENCE_BREAK = re.compile(r"(?<=[.!?])(?=\s|$)")

REAR_KEYWORDS = ("rear", "behind", "back view")
OVER_SHOULDER_KEYWORDS = ("looking back at camera", "over the shoulder", "over-the-shoulder")
PROFILE_KEYWORDS = ("90", "profile")
# Stricter match for the identity override; "190 cm" is not a profile pose
SIDE_PROFILE_KEYWORDS = ("90-degree", "profile")

NO_FRONTAL_FACE = "ABSOLUTELY NO FULL FRONTAL FACE. DO NOT TURN SUBJECT TOWARD CAMERA."


@dataclass
class CharacterAdjustments:
    """Slider targets applied when the body is not locked to the reference."""
    eye_color: str = "Brown"
    body_build: str = "Average"
    chest_size: str = "Average"
    hip_size: str = "Average"


@dataclass(frozen=True)
class ComposedPrompt:
    prompt_text: str
    aspect_ratio: str
    resolution: str = Resolution.ONE_K.value
    filename_hint: str = ""


def strip_body_shape(profile: str) -> str:
    """Drop every sentence that talks about body shape."""
    kept = [
        s for s in SENTENCE_BREAK.split(profile)
        if s.strip() and not any(term in s.lower() for term in BODY_SHAPE_TERMS)
    ]
    return "".join(kept).strip()


def extract_hair(profile: str) -> str:
    match = HAIR_PATTERN.search(profile)
    return match.group(1).strip() if match else ""


def _sentence(text: str) -> str:
    text = text.strip()
    if not text or text[-1] in ".!?":
        return text
    return f"{text}."


def _contains_any(text: str, keywords) -> bool:
    return any(kw in text for kw in keywords)


class PromptComposer:
    """Composes per-pose synthesis prompts with identity locking.

    Args:
        wardrobe: Pool the clothing clause is drawn from
        expressions: Pool the expression clause is drawn from
        draw: Function picking one entry of a sequence
        seed: Seed for a private generator, used when no draw is given
    """

    def __init__(
        self,
        wardrobe: Sequence[str],
        expressions: Sequence[str],
        draw: Optional[Callable[[Sequence[str]], str]] = None,
        seed: Optional[int] = None,
    ):
        if not wardrobe:
            raise ValueError("Wardrobe pool is empty")
        self.wardrobe = tuple(wardrobe)
        self.expressions = tuple(expressions)
        self.draw = draw or random.Random(seed).choice

    # -------------------------------------------------------------------------
    # IDENTITY CLAUSE
    # -------------------------------------------------------------------------

    def build_identity_clause(
        self,
        pose: PoseDefinition,
        adjustments: CharacterAdjustments,
        identity_profile: str,
        hair_locked: bool = True,
        body_locked: bool = False,
    ) -> str:
        """Build the identity constraints for one pose.

        Portraits never carry body-shape language: sentences mentioning it are
        removed from the profile and the body lock/slider targets are skipped.
        """
        profile = (identity_profile or "").strip()
        if not profile:
            return ""

        if pose.is_portrait:
            profile = strip_body_shape(profile)
        hair = extract_hair(profile)

        if _contains_any(pose.description.lower(), SIDE_PROFILE_KEYWORDS):
            constraint = (
                "CRITICAL: Ignore reference orientation; "
                "force profile specified in TARGET POSE."
            )
        else:
            constraint = "Preserve identity features and facial structure exactly."

        parts = [f"IDENTITY CONSTRAINTS: {constraint} Eyes: {adjustments.eye_color}."]
        profile = profile.rstrip(" .!?")
        if profile:
            parts.append(f"Profile: {profile}.")

        if hair_locked and hair:
            parts.append(
                f"MANDATORY HAIR CONSISTENCY: {hair}. DO NOT ALTER LENGTH OR STYLE."
            )

        if pose.is_portrait:
            return " ".join(parts)

        if body_locked:
            parts.append(
                "Keep the exact original body build and proportions from reference image."
            )
        else:
            parts.append(
                f"Targeted Build: {adjustments.body_build}, "
                f"Chest: {adjustments.chest_size}, Hips: {adjustments.hip_size}."
            )
        return " ".join(parts)

    # -------------------------------------------------------------------------
    # ORIENTATION CLAUSE
    # -------------------------------------------------------------------------

    @staticmethod
    def build_orientation_clause(description: str) -> str:
        """Infer a single camera-orientation directive from the pose text."""
        desc = description.lower()
        is_rear = _contains_any(desc, REAR_KEYWORDS)
        is_over_shoulder = _contains_any(desc, OVER_SHOULDER_KEYWORDS)
        is_left = "left" in desc
        is_right = "right" in desc
        is_profile = _contains_any(desc, PROFILE_KEYWORDS)
        is_45 = "45" in desc
        # Frontal only when nothing else gives a direction
        is_frontal = (
            ("frontal" in desc or ("center" in desc and "behind" not in desc))
            and not (is_left or is_right or is_rear)
        )

        if is_rear or is_45 or is_profile or is_left or is_right:
            parts = ["CRITICAL SHOT ORIENTATION:"]
            if is_rear:
                parts.append("Rear view. Subject is facing away from camera.")
                if is_left:
                    parts.append(
                        "Camera positioned behind and to the right, "
                        "seeing back of head and left side only."
                    )
                if is_right:
                    parts.append(
                        "Camera positioned behind and to the left, "
                        "seeing back of head and right side only."
                    )
            elif is_profile:
                parts.append("Strict 90-degree side profile.")
                if is_left:
                    parts.append("Facing screen-left. Only left profile visible.")
                if is_right:
                    parts.append("Facing screen-right. Only right profile visible.")
            else:
                parts.append("Angled orientation.")
                if is_left:
                    parts.append("Subject facing screen-left.")
                if is_right:
                    parts.append("Subject facing screen-right.")

            if is_over_shoulder:
                parts.append(
                    "Subject is looking back at the camera over their shoulder, "
                    "but primary body orientation is maintained."
                )
            parts.append(NO_FRONTAL_FACE)
            return " ".join(parts)

        if is_frontal:
            return (
                "Direct frontal view. Subject looking straight into camera "
                "with both eyes fully visible and centered."
            )
        return ""

    # -------------------------------------------------------------------------
    # FRAMING, EXPRESSION, WARDROBE
    # -------------------------------------------------------------------------

    @staticmethod
    def build_framing_clause(pose: PoseDefinition) -> str:
        framing = PORTRAIT_FRAMING if pose.is_portrait else STANDARD_FRAMING
        return f"COMPOSITION: {framing}"

    def build_expression_clause(self, pose: PoseDefinition) -> str:
        """Empty when the pose text already encodes an expression."""
        if _contains_any(pose.description.lower(), EXPRESSION_KEYWORDS):
            return ""
        if pose.group in (DatasetGroup.PORTRAIT.value, DatasetGroup.UPPER.value) and self.expressions:
            expression = self.draw(self.expressions)
        else:
            expression = NEUTRAL_EXPRESSION
        return f"EXPRESSION: {expression}"

    def build_wardrobe_clause(self) -> str:
        return f"CLOTHING: {self.draw(self.wardrobe)}"

    @staticmethod
    def aspect_ratio_for(pose: PoseDefinition) -> str:
        return GROUP_ASPECT_RATIOS[DatasetGroup(pose.group)].value

    @staticmethod
    def filename_hint(pose: PoseDefinition, project_context: str = "") -> str:
        label = re.sub(r"\s+", "_", pose.label.strip())
        return f"{project_context}_{label}" if project_context else label

    # -------------------------------------------------------------------------
    # PROMPT ASSEMBLY
    # -------------------------------------------------------------------------

    def compose(
        self,
        pose: PoseDefinition,
        adjustments: CharacterAdjustments,
        identity_profile: str,
        hair_locked: bool = True,
        body_locked: bool = False,
        resolution: str = Resolution.ONE_K.value,
        project_context: str = "",
    ) -> ComposedPrompt:
        """Build the complete synthesis instruction for one pose.

        Args:
            pose: Target pose
            adjustments: Slider targets for unlocked bodies
            identity_profile: Active identity description
            hair_locked: Force the reference hair length and style
            body_locked: Force the reference body build
            resolution: Output size forwarded with the prompt
            project_context: Project name, only used for the filename hint

        Returns:
            ComposedPrompt with the text, aspect ratio and filename hint
        """
        # Draw order is fixed (expression, then wardrobe) for reproducibility
        expression = self.build_expression_clause(pose)
        wardrobe = self.build_wardrobe_clause()

        clauses = [
            PRODUCTION_HEADER,
            self.build_orientation_clause(pose.description),
            f"TARGET POSE: {pose.description}",
            self.build_framing_clause(pose),
            expression,
            wardrobe,
            self.build_identity_clause(
                pose, adjustments, identity_profile,
                hair_locked=hair_locked, body_locked=body_locked,
            ),
            ENVIRONMENT_CLAUSE,
        ]
        prompt = " ".join(_sentence(c) for c in clauses if c and c.strip())

        return ComposedPrompt(
            prompt_text=prompt,
            aspect_ratio=self.aspect_ratio_for(pose),
            resolution=Resolution(resolution).value,
            filename_hint=self.filename_hint(pose, project_context),
        )
