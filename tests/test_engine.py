"""
Tests for prompt composition.

Covers identity locking, portrait body-shape stripping, orientation
inference, expression/wardrobe draws and the final clause layout.
"""

import pytest

from dataset_prompts.catalog import PoseDefinition
from dataset_prompts.engine import (
    CharacterAdjustments,
    PromptComposer,
    extract_hair,
    strip_body_shape,
)

from conftest import EXPRESSIONS, PROFILE, WARDROBE


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _pose(description: str, group: str = "upper", label: str = "Test Pose") -> PoseDefinition:
    return PoseDefinition(id="t", label=label, group=group, description=description)


def _first(seq):
    return seq[0]


def _compose(description: str, group: str = "upper", profile: str = PROFILE, **kwargs) -> str:
    composer = PromptComposer(WARDROBE, EXPRESSIONS, draw=_first)
    return composer.compose(
        _pose(description, group), CharacterAdjustments(), profile, **kwargs
    ).prompt_text


# ---------------------------------------------------------------------------
# Identity clause
# ---------------------------------------------------------------------------

class TestIdentityClause:
    def test_portrait_strips_body_shape_sentences(self):
        prompt = _compose("Frontal headshot", group="portrait").lower()
        for term in ("body build", "proportion", "waist"):
            assert term not in prompt
        assert "oval face" in prompt

    def test_portrait_skips_body_targets(self):
        prompt = _compose("Frontal headshot", group="portrait", body_locked=True)
        assert "Targeted Build" not in prompt
        assert "Keep the exact original body build" not in prompt

    def test_hair_lock_quotes_hair_fragment(self):
        prompt = _compose("Frontal headshot", group="portrait")
        assert (
            "MANDATORY HAIR CONSISTENCY: shoulder-length wavy auburn hair with "
            "copper highlights. DO NOT ALTER LENGTH OR STYLE." in prompt
        )

    def test_hair_unlocked_has_no_directive(self):
        prompt = _compose("Frontal headshot", hair_locked=False)
        assert "MANDATORY HAIR CONSISTENCY" not in prompt

    def test_no_hair_marker_means_no_directive(self):
        prompt = _compose("Frontal headshot", profile="FACE: round face. Dark eyes.")
        assert "MANDATORY HAIR CONSISTENCY" not in prompt

    def test_body_locked_preserves_reference_build(self):
        prompt = _compose("Upper body, arms crossed", body_locked=True)
        assert "Keep the exact original body build and proportions from reference image." in prompt
        assert "Targeted Build" not in prompt

    def test_unlocked_body_uses_adjustments(self):
        composer = PromptComposer(WARDROBE, EXPRESSIONS, draw=_first)
        adjustments = CharacterAdjustments(
            eye_color="Green", body_build="Curvy", chest_size="Large", hip_size="Wide"
        )
        prompt = composer.compose(_pose("Full body standing", "full"), adjustments, PROFILE).prompt_text
        assert "Targeted Build: Curvy, Chest: Large, Hips: Wide." in prompt
        assert "Eyes: Green." in prompt

    def test_non_portrait_keeps_full_profile(self):
        prompt = _compose("Upper body, arms crossed")
        assert "narrow waist" in prompt

    def test_profile_pose_forces_target_orientation(self):
        prompt = _compose("Strict 90-degree profile facing left")
        assert "force profile specified in TARGET POSE" in prompt

    def test_height_in_description_is_not_a_profile_pose(self):
        prompt = _compose("Full body standing tall, 190 cm", group="full")
        assert "force profile specified in TARGET POSE" not in prompt
        assert "Preserve identity features and facial structure exactly." in prompt

    def test_empty_profile_omits_identity(self):
        prompt = _compose("Upper body, arms crossed", profile="   ")
        assert "IDENTITY CONSTRAINTS" not in prompt

    def test_strip_body_shape_keeps_other_sentences(self):
        text = "HAIR: short. Slim waist! FACE: round? Proportions average."
        assert strip_body_shape(text) == "HAIR: short. FACE: round?"

    def test_strip_body_shape_ignores_decimal_points(self):
        text = "HAIR: bob. BODY: 5.5 ft, slim waist. FACE: round."
        assert strip_body_shape(text) == "HAIR: bob. FACE: round."

    def test_extract_hair_is_case_insensitive(self):
        assert extract_hair("face: oval. hair: black bob. body: slim.") == "black bob"
        assert extract_hair("FACE: oval.") == ""


# ---------------------------------------------------------------------------
# Orientation clause
# ---------------------------------------------------------------------------

class TestOrientationClause:
    orient = staticmethod(PromptComposer.build_orientation_clause)

    def test_rear_left_sees_left_side_from_behind_right(self):
        clause = self.orient("Full body rear view, turned to the left")
        assert "Rear view. Subject is facing away from camera." in clause
        assert "behind and to the right" in clause
        assert "left side only" in clause

    def test_rear_right_is_mirrored(self):
        clause = self.orient("View from behind, head turned right")
        assert "behind and to the left" in clause
        assert "right side only" in clause

    def test_profile_left(self):
        clause = self.orient("Strict 90-degree profile facing left")
        assert "Strict 90-degree side profile." in clause
        assert "Facing screen-left. Only left profile visible." in clause

    def test_45_right_is_angled(self):
        clause = self.orient("Rotated 45 degrees to the right")
        assert "Angled orientation." in clause
        assert "Subject facing screen-right." in clause

    def test_bare_left_is_angled(self):
        clause = self.orient("Head tilted slightly left")
        assert "Angled orientation." in clause

    def test_over_shoulder_keeps_body_orientation(self):
        clause = self.orient("From behind, looking back at camera over the shoulder")
        assert "looking back at the camera over their shoulder" in clause
        assert "primary body orientation is maintained" in clause

    def test_non_frontal_forbids_frontal_face(self):
        for desc in ("rear view", "90-degree profile", "45 degree turn", "turned left"):
            assert self.orient(desc).endswith(
                "ABSOLUTELY NO FULL FRONTAL FACE. DO NOT TURN SUBJECT TOWARD CAMERA."
            )

    def test_frontal(self):
        clause = self.orient("Frontal headshot, head centered")
        assert clause.startswith("Direct frontal view.")
        assert "FRONTAL FACE" not in clause

    def test_frontal_with_direction_is_not_frontal(self):
        clause = self.orient("Frontal stance, head turned left")
        assert "Direct frontal view" not in clause
        assert "Angled orientation." in clause

    def test_center_behind_is_rear(self):
        clause = self.orient("Camera center, standing behind a chair")
        assert "Rear view" in clause
        assert "Direct frontal view" not in clause

    def test_no_direction_is_empty(self):
        assert self.orient("Seated on a stool, hands in lap") == ""


# ---------------------------------------------------------------------------
# Framing, expression, wardrobe, aspect ratio
# ---------------------------------------------------------------------------

class TestClauses:
    def test_portrait_framing(self):
        prompt = _compose("Frontal headshot", group="portrait")
        assert "COMPOSITION: 85mm lens, tight headshot" in prompt

    def test_standard_framing(self):
        prompt = _compose("Upper body, arms crossed")
        assert "COMPOSITION: Professional framing, standard lens." in prompt

    def test_expression_keyword_skips_clause(self):
        prompt = _compose("Frontal headshot with a soft smile", group="portrait")
        assert "EXPRESSION:" not in prompt

    def test_portrait_and_upper_draw_expression(self):
        for group in ("portrait", "upper"):
            prompt = _compose("Frontal headshot", group=group)
            assert f"EXPRESSION: {EXPRESSIONS[0]}." in prompt

    def test_full_body_uses_neutral_gaze(self):
        prompt = _compose("Full body standing", group="full")
        assert "EXPRESSION: neutral gaze." in prompt

    def test_wardrobe_drawn_from_pool(self):
        prompt = _compose("Upper body, arms crossed")
        assert f"CLOTHING: {WARDROBE[0]}." in prompt

    def test_aspect_ratio_by_group(self):
        composer = PromptComposer(WARDROBE, EXPRESSIONS, seed=1)
        adj = CharacterAdjustments()
        assert composer.compose(_pose("x", "full"), adj, PROFILE).aspect_ratio == "3:4"
        assert composer.compose(_pose("x", "upper"), adj, PROFILE).aspect_ratio == "1:1"
        assert composer.compose(_pose("x", "portrait"), adj, PROFILE).aspect_ratio == "1:1"

    def test_empty_wardrobe_rejected(self):
        with pytest.raises(ValueError):
            PromptComposer((), EXPRESSIONS)


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

class TestAssembly:
    def test_clause_order(self):
        prompt = _compose("Upper body rotated 45 degrees to the right")
        markers = [
            "DATASET PRODUCTION.",
            "CRITICAL SHOT ORIENTATION:",
            "TARGET POSE:",
            "COMPOSITION:",
            "EXPRESSION:",
            "CLOTHING:",
            "IDENTITY CONSTRAINTS:",
            "ENVIRONMENT:",
        ]
        positions = [prompt.index(m) for m in markers]
        assert positions == sorted(positions)

    def test_absent_clauses_leave_no_delimiters(self):
        prompt = _compose("Seated on a stool, hands in lap, soft smile", profile="")
        assert prompt.startswith("DATASET PRODUCTION. TARGET POSE: Seated on a stool")
        assert ".." not in prompt
        assert "  " not in prompt
        assert prompt.endswith("8k resolution, high detail.")

    def test_no_double_periods_with_full_profile(self):
        for group in ("portrait", "upper", "full"):
            prompt = _compose("Rear view, turned left.", group=group)
            assert ".." not in prompt

    def test_seeded_composition_is_reproducible(self):
        pose = _pose("Upper body, arms crossed")
        first = PromptComposer(WARDROBE, EXPRESSIONS, seed=42).compose(
            pose, CharacterAdjustments(), PROFILE
        )
        second = PromptComposer(WARDROBE, EXPRESSIONS, seed=42).compose(
            pose, CharacterAdjustments(), PROFILE
        )
        assert first == second

    def test_filename_hint_uses_project_and_label(self):
        composer = PromptComposer(WARDROBE, EXPRESSIONS, seed=1)
        composed = composer.compose(
            _pose("x", label="Left  Profile"), CharacterAdjustments(), PROFILE,
            resolution="2K", project_context="Proj",
        )
        assert composed.filename_hint == "Proj_Left_Profile"
        assert composed.resolution == "2K"
        assert "Proj" not in composed.prompt_text
