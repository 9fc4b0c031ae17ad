"""Active identity profile resolution.

Exactly one identity profile is active at a time: the analysis result in
auto mode, or the user's own text in manual mode. The two are never merged.
"""

from typing import Optional

from .config import ProfileMode


def active_profile(mode, auto_profile: Optional[str],
                   manual_text: Optional[str]) -> Optional[str]:
    """Return the profile text for the current mode, or None if there is none."""
    if ProfileMode(mode) is ProfileMode.AUTO:
        return auto_profile or None
    return (manual_text or "").strip() or None


def is_ready(mode, auto_profile: Optional[str],
             manual_text: Optional[str]) -> bool:
    return active_profile(mode, auto_profile, manual_text) is not None
