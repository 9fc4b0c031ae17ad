#!/usr/bin/env python3
"""Main entry point for the pose dataset studio.

Usage:
    # List the pose catalog (optionally one group)
    python -m dataset_studio.run poses --group portrait

    # Preview composed prompts without generating anything
    python -m dataset_studio.run prompts --profile-text "HAIR: ..." --group full --seed 7

    # Print the identity profile Gemini derives from a reference
    python -m dataset_studio.run analyze --image ref.png

    # Generate a dataset from an analysed profile
    python -m dataset_studio.run generate --image ref.png --all

    # Generate with a hand-written profile and the body locked to the reference
    python -m dataset_studio.run generate --image ref.png --profile-file profile.txt \\
        --group upper --lock-body --resolution 2K

Ctrl-C during generate stops the batch after the current image.
"""

import argparse
import asyncio
import base64
import logging
import os
import signal
import sys
from typing import Optional

from dotenv import load_dotenv

from dataset_studio.batch_pipeline import BatchPipeline, CancellationToken
from dataset_studio.config import POSE_GROUP_CHOICES, ProfileMode, Resolution, StudioConfig
from dataset_studio.gemini_client import GeminiClient
from dataset_studio.session import StudioSession
from dataset_prompts.catalog import PoseCatalog
from dataset_prompts.engine import CharacterAdjustments, PromptComposer

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _selected_ids(args, catalog: PoseCatalog) -> list:
    if getattr(args, "all", False):
        return catalog.ids()
    ids = []
    for group in getattr(args, "group", None) or []:
        ids.extend(p.id for p in catalog.by_group(group))
    if getattr(args, "poses", None):
        ids.extend(p.strip() for p in args.poses.split(",") if p.strip())
    return ids


def _read_profile(args) -> str:
    if getattr(args, "profile_file", None):
        with open(args.profile_file, "r", encoding="utf-8") as f:
            return f.read()
    return getattr(args, "profile_text", None) or ""


def _adjustments(args, catalog: PoseCatalog) -> CharacterAdjustments:
    try:
        return CharacterAdjustments(
            eye_color=catalog.adjustment_value("eye_color", args.eye_color),
            body_build=catalog.adjustment_value("body_build", args.build),
            chest_size=catalog.adjustment_value("chest_size", args.chest),
            hip_size=catalog.adjustment_value("hip_size", args.hips),
        )
    except ValueError as e:
        print(e)
        sys.exit(1)


def save_images(images, catalog: PoseCatalog, output_dir: str,
                project_name: str) -> list:
    """Write generated images to disk, oldest first.

    Returns list of saved file paths.
    """
    os.makedirs(output_dir, exist_ok=True)
    saved = []
    for idx, img in enumerate(reversed(images)):
        _, _, payload = img.url.partition("base64,")
        if not payload:
            logger.warning(f"Skipping {img.id}: not a base64 data URI")
            continue
        pose = catalog.get(img.pose_id)
        hint = PromptComposer.filename_hint(pose, project_name) if pose else f"{project_name}_Frame"
        path = os.path.join(output_dir, f"{hint}_{idx}.png")
        with open(path, "wb") as f:
            f.write(base64.b64decode(payload))
        saved.append(path)
    return saved


# -----------------------------------------------------------------------------
# COMMANDS
# -----------------------------------------------------------------------------

def cmd_poses(args, config):
    """List the pose catalog."""
    catalog = PoseCatalog.load(config.catalog_dir)
    groups = args.group or POSE_GROUP_CHOICES
    for group in groups:
        poses = catalog.by_group(group)
        print(f"\n{group.upper()} ({len(poses)})")
        for pose in poses:
            print(f"  {pose.id:20s}  {pose.label:22s}  {pose.description}")


def cmd_prompts(args, config):
    """Compose and display prompts without running generation."""
    catalog = PoseCatalog.load(config.catalog_dir)
    profile = _read_profile(args)
    if not profile.strip():
        print("Specify --profile-text or --profile-file")
        sys.exit(1)

    composer = PromptComposer(catalog.wardrobe, catalog.expressions, seed=args.seed)
    selected = _selected_ids(args, catalog)
    if not selected:
        poses = list(catalog)
    else:
        poses = catalog.filter(selected)
        unknown = set(selected) - {p.id for p in poses}
        if unknown:
            logger.warning(f"Ignoring unknown pose ids: {', '.join(sorted(unknown))}")
        if not poses:
            print("None of the selected poses are in the catalog")
            sys.exit(1)

    adjustments = _adjustments(args, catalog)
    for pose in poses:
        composed = composer.compose(
            pose,
            adjustments,
            profile,
            hair_locked=not args.unlock_hair,
            body_locked=args.lock_body,
            resolution=args.resolution,
            project_context=config.project_name,
        )
        print(f"\n--- {pose.label} [{pose.group}, {composed.aspect_ratio}] ---")
        print(composed.prompt_text)


def cmd_analyze(args, config):
    """Print the identity profile derived from a reference image."""
    api_key = config.api_key()
    if not api_key:
        print("Set GEMINI_API_KEY (or GOOGLE_API_KEY) in the environment or .env")
        sys.exit(1)

    session = StudioSession(project_name=config.project_name, authorized=True)
    session.load_reference(args.image)
    catalog = PoseCatalog.load(config.catalog_dir)
    pipeline = BatchPipeline(
        session,
        GeminiClient(api_key, config),
        PromptComposer(catalog.wardrobe, catalog.expressions),
        catalog,
        config,
    )
    profile = asyncio.run(pipeline.analyze_reference())
    if not profile:
        print("Analysis failed, see log for details")
        sys.exit(1)
    print(profile)


async def _run_generate(pipeline: BatchPipeline, token: Optional[CancellationToken] = None):
    token = token or CancellationToken()

    def stop():
        token.cancel()
        pipeline.request_stop()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, stop)
    except NotImplementedError:
        # Signal handlers are unavailable on Windows event loops
        pass

    if pipeline.session.profile_mode is ProfileMode.AUTO:
        await pipeline.analyze_reference()
    if token.cancelled:
        logger.info("Stop requested during analysis, no poses will be generated")
    # A token cancelled during analysis ends the batch before its first pose
    return await pipeline.run_batch(cancel_token=token)


def cmd_generate(args, config):
    """Run a batch for the selected poses and save the results."""
    api_key = config.api_key()
    if not api_key:
        print("Set GEMINI_API_KEY (or GOOGLE_API_KEY) in the environment or .env")
        sys.exit(1)

    catalog = PoseCatalog.load(config.catalog_dir)
    selected = _selected_ids(args, catalog)
    if not selected:
        print("Specify --all, --group or --poses")
        sys.exit(1)

    manual = _read_profile(args)
    session = StudioSession(
        project_name=config.project_name,
        profile_mode=ProfileMode.MANUAL if manual.strip() else ProfileMode.AUTO,
        manual_profile=manual,
        adjustments=_adjustments(args, catalog),
        hair_locked=not args.unlock_hair,
        body_locked=args.lock_body,
        resolution=Resolution(args.resolution),
        authorized=True,
    )
    session.load_reference(args.image)
    session.select(selected)

    composer = PromptComposer(catalog.wardrobe, catalog.expressions, seed=args.seed)
    pipeline = BatchPipeline(session, GeminiClient(api_key, config), composer, catalog, config)

    task = asyncio.run(_run_generate(pipeline))

    output_dir = config.output.project_dir(config.project_name)
    saved = save_images(task.images, catalog, output_dir, config.project_name)

    print(f"\nBatch {task.status.value}: {task.current}/{task.total} processed")
    print(f"  Saved {len(saved)} images to {output_dir}")
    if task.error:
        print(f"  Error: {task.error}")
    for failed in reversed(session.failed_assets):
        print(f"  FAILED {failed.label}: {failed.message}")
    if session.selected_pose_ids:
        remaining = ",".join(p.id for p in catalog.filter(session.selected_pose_ids))
        print(f"  Retry with: --poses {remaining}")


def _add_profile_args(parser):
    parser.add_argument("--profile-text", type=str, help="Identity profile text")
    parser.add_argument("--profile-file", type=str, help="File holding the identity profile")


def _add_selection_args(parser):
    parser.add_argument("--all", action="store_true")
    parser.add_argument("--group", action="append", choices=POSE_GROUP_CHOICES)
    parser.add_argument("--poses", type=str, help="Comma-separated pose ids")


def _add_composition_args(parser):
    parser.add_argument("--resolution", choices=[r.value for r in Resolution], default=None)
    parser.add_argument("--lock-body", action="store_true")
    parser.add_argument("--unlock-hair", action="store_true")
    parser.add_argument("--eye-color", default="Brown")
    parser.add_argument("--build", default="Average")
    parser.add_argument("--chest", default="Average")
    parser.add_argument("--hips", default="Average")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Pose-varied character dataset generation"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--config", type=str, help="YAML config file")
    parser.add_argument("--project", type=str, help="Project name (file prefix)")
    parser.add_argument("--output-dir", type=str)
    parser.add_argument("--catalog-dir", type=str)
    parser.add_argument("--seed", type=int, default=None)

    subparsers = parser.add_subparsers(dest="command")

    p_poses = subparsers.add_parser("poses", help="List the pose catalog")
    p_poses.add_argument("--group", action="append", choices=POSE_GROUP_CHOICES)

    p_prompts = subparsers.add_parser("prompts", help="Preview prompts")
    _add_profile_args(p_prompts)
    _add_selection_args(p_prompts)
    _add_composition_args(p_prompts)

    p_analyze = subparsers.add_parser("analyze", help="Analyze a reference image")
    p_analyze.add_argument("--image", required=True)

    p_generate = subparsers.add_parser("generate", help="Generate a pose dataset")
    p_generate.add_argument("--image", required=True)
    _add_profile_args(p_generate)
    _add_selection_args(p_generate)
    _add_composition_args(p_generate)

    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    load_dotenv()

    config = StudioConfig.from_yaml(args.config) if args.config else StudioConfig()
    if args.project:
        config.project_name = args.project
    if args.output_dir:
        config.output.base_dir = args.output_dir
    if args.catalog_dir:
        config.catalog_dir = args.catalog_dir
    if getattr(args, "resolution", None) is None and hasattr(args, "resolution"):
        args.resolution = config.default_resolution

    commands = {
        "poses": cmd_poses,
        "prompts": cmd_prompts,
        "analyze": cmd_analyze,
        "generate": cmd_generate,
    }

    if args.command in commands:
        commands[args.command](args, config)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
