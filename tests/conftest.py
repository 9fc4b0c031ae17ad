"""Shared fixtures: a small pose catalog, a ready session and a fake client."""

import base64

import pytest

from dataset_prompts.catalog import PoseCatalog, PoseDefinition
from dataset_prompts.engine import PromptComposer
from dataset_studio.batch_pipeline import BatchPipeline
from dataset_studio.config import ProfileMode
from dataset_studio.session import StudioSession

PROFILE = (
    "HAIR: shoulder-length wavy auburn hair with copper highlights. "
    "FACE: oval face, almond-shaped green eyes, full lips. "
    "BODY: athletic body build, narrow waist, balanced proportions."
)

WARDROBE = ("plain white t-shirt", "charcoal turtleneck")
EXPRESSIONS = ("calm look", "soft grin")


class FakeClient:
    """Stands in for GeminiClient.

    failures maps a 1-based synthesize call number to the exception raised
    by that call. on_call runs at the start of every synthesize call.
    """

    def __init__(self, failures=None, profile=PROFILE, analyze_error=None):
        self.failures = failures or {}
        self.profile = profile
        self.analyze_error = analyze_error
        self.calls = []
        self.analyze_calls = 0
        self.on_call = None

    async def analyze(self, reference_image):
        self.analyze_calls += 1
        if self.analyze_error is not None:
            raise self.analyze_error
        return self.profile

    async def synthesize(self, reference_image, prompt, resolution="1K", aspect_ratio="1:1"):
        self.calls.append({
            "prompt": prompt,
            "resolution": resolution,
            "aspect_ratio": aspect_ratio,
        })
        n = len(self.calls)
        if self.on_call is not None:
            self.on_call(n)
        if n in self.failures:
            raise self.failures[n]
        payload = base64.b64encode(f"image-{n}".encode()).decode("ascii")
        return f"data:image/png;base64,{payload}"


@pytest.fixture
def catalog():
    return PoseCatalog(
        poses=(
            PoseDefinition("a", "Front Head", "portrait", "Frontal headshot, head centered"),
            PoseDefinition("b", "Left Profile", "portrait", "Strict 90-degree profile facing left"),
            PoseDefinition("c", "Upper 45", "upper", "Upper body rotated 45 degrees to the right"),
            PoseDefinition("d", "Full Front", "full", "Full body standing, arms relaxed"),
            PoseDefinition("e", "Full Rear", "full", "Full body rear view, torso turned to the left"),
        ),
        wardrobe=WARDROBE,
        expressions=EXPRESSIONS,
    )


@pytest.fixture
def composer():
    return PromptComposer(WARDROBE, EXPRESSIONS, seed=7)


@pytest.fixture
def session(catalog):
    s = StudioSession(
        project_name="Test_Project",
        reference_image=b"\x89PNG reference",
        profile_mode=ProfileMode.MANUAL,
        manual_profile=PROFILE,
        authorized=True,
    )
    s.select_all(catalog)
    return s


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def pipeline(session, client, composer, catalog):
    return BatchPipeline(session, client, composer, catalog)
