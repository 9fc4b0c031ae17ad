"""Pose Dataset Studio orchestrator.

Turns one reference portrait and an identity profile into a batch of
pose-varied images for character LoRA dataset assembly, using the Gemini
image models.
"""

__version__ = "1.0.0"
