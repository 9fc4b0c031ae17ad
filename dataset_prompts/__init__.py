"""Pose catalog and prompt composition for dataset generation."""
