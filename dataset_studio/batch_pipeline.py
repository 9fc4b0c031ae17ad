"""Batch pipeline: sequential pose dataset generation for one character.

Pipeline flow per batch:
    1. Check preconditions (reference, active profile, API key, selection)
    2. Reset the failed-asset list and start a fresh task
    3. For each selected pose, in catalog order:
        a. Stop if a stop was requested
        b. Compose the pose prompt
        c. Synthesize the image
        d. Record the image (and drop the pose from the selection) or the failure
    4. Mark the task completed unless it was stopped or failed

Task states:
    pending -> generating -> completed | failed | stopped

Only a rejected API key fails the task. Every other synthesis error is
recorded as a FailedAsset and the batch moves on to the next pose. Poses are
never synthesized concurrently; a stop request is honoured between poses,
never in the middle of a provider call.
"""

import logging
from typing import Optional

from .config import ProfileMode, StudioConfig, TaskStatus
from .gemini_client import AuthExpired
from .session import FailedAsset, GeneratedImage, GenerationTask, StudioSession, now_ms

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative stop flag handed to a single batch run."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class BatchPipeline:
    """Drives the selected poses through the composer and the client.

    The session is owned by the pipeline while a task is generating; callers
    should only read it (or call request_stop) until the run returns.
    """

    def __init__(
        self,
        session: StudioSession,
        client,
        composer,
        catalog,
        config: Optional[StudioConfig] = None,
    ):
        self.session = session
        self.client = client
        self.composer = composer
        self.catalog = catalog
        self.config = config or StudioConfig()
        self._token: Optional[CancellationToken] = None

    # -------------------------------------------------------------------------
    # PROFILE ANALYSIS
    # -------------------------------------------------------------------------

    async def analyze_reference(self) -> Optional[str]:
        """Fill the auto profile from the reference image.

        Does nothing in manual mode or without a reference. A rejected key
        de-authorizes the session; other failures leave the profile unset.
        """
        session = self.session
        if session.profile_mode is not ProfileMode.AUTO or not session.reference_image:
            return None

        logger.info("Analyzing reference image")
        try:
            session.auto_profile = await self.client.analyze(session.reference_image)
        except AuthExpired as e:
            logger.error(f"Analysis rejected, API key needs re-entry: {e}")
            session.authorized = False
            return None
        except Exception as e:
            logger.error(f"Analysis failed: {e}")
            return None

        logger.debug(f"Identity profile: {session.auto_profile}")
        return session.auto_profile

    async def switch_profile_mode(self, mode) -> None:
        """Change the profile source, analysing the reference if auto needs it."""
        session = self.session
        session.profile_mode = ProfileMode(mode)
        if (session.profile_mode is ProfileMode.AUTO
                and session.reference_image and not session.auto_profile):
            await self.analyze_reference()

    # -------------------------------------------------------------------------
    # BATCH
    # -------------------------------------------------------------------------

    def can_start(self, poses) -> bool:
        session = self.session
        missing = []
        if not session.reference_image:
            missing.append("reference image")
        if not session.is_profile_ready():
            missing.append("identity profile")
        if not session.authorized:
            missing.append("API key")
        if not poses:
            missing.append("pose selection")
        if session.is_busy:
            missing.append("idle studio")
        if missing:
            logger.warning(f"Batch not started, missing: {', '.join(missing)}")
            return False
        return True

    async def run_batch(
        self,
        selected_ids=None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> GenerationTask:
        """Generate one image per selected pose.

        Args:
            selected_ids: Pose ids to generate (defaults to the session selection)
            cancel_token: Token checked before each pose; a new one if omitted

        Returns:
            The session task. Unchanged if a precondition was not met.
        """
        session = self.session
        if selected_ids is None:
            selected_ids = session.selected_pose_ids
        poses = self.catalog.filter(selected_ids)
        unknown = set(selected_ids) - {p.id for p in poses}
        if unknown:
            logger.warning(f"Ignoring unknown pose ids: {', '.join(sorted(unknown))}")

        if not self.can_start(poses):
            return session.task

        identity = session.active_profile()
        reference = session.reference_image

        session.failed_assets = []
        task = GenerationTask(status=TaskStatus.GENERATING, total=len(poses))
        session.task = task
        token = cancel_token or CancellationToken()
        self._token = token

        logger.info(f"Starting batch: {len(poses)} poses for {session.project_name}")

        for pose in poses:
            if token.cancelled:
                logger.info(f"Stop requested, halting before {pose.id}")
                break

            composed = self.composer.compose(
                pose,
                session.adjustments,
                identity,
                hair_locked=session.hair_locked,
                body_locked=session.body_locked,
                resolution=session.resolution.value,
                project_context=session.project_name,
            )
            logger.debug(f"Prompt for {pose.id}: {composed.prompt_text}")

            try:
                url = await self.client.synthesize(
                    reference,
                    composed.prompt_text,
                    composed.resolution,
                    composed.aspect_ratio,
                )
            except AuthExpired as e:
                logger.error(f"API key rejected at {pose.id}, aborting batch: {e}")
                session.authorized = False
                task.error = str(e)
                # A stopped task stays stopped
                if task.status is TaskStatus.GENERATING:
                    task.status = TaskStatus.FAILED
                return task
            except Exception as e:
                stamp = now_ms()
                session.failed_assets.insert(0, FailedAsset(
                    id=f"failed-{stamp}-{pose.id}",
                    label=pose.label,
                    message=str(e),
                    prompt=composed.prompt_text,
                    timestamp=stamp,
                ))
                task.current += 1
                logger.error(f"[{task.current}/{task.total}] Failed {pose.label}: {e}")
                continue

            stamp = now_ms()
            image = GeneratedImage(
                id=f"dataset-{stamp}-{pose.id}",
                url=url,
                prompt=composed.prompt_text,
                timestamp=stamp,
                group=pose.group,
                pose_id=pose.id,
            )
            task.images.insert(0, image)
            session.gallery.insert(0, image)
            session.selected_pose_ids.discard(pose.id)
            task.current += 1
            logger.info(f"[{task.current}/{task.total}] Generated {pose.label}")

        if task.status is TaskStatus.GENERATING:
            task.status = TaskStatus.STOPPED if token.cancelled else TaskStatus.COMPLETED

        logger.info(
            f"Batch {task.status.value}: {len(task.images)} generated, "
            f"{len(session.failed_assets)} failed"
        )
        return task

    def request_stop(self) -> None:
        """Stop after the pose currently being synthesized."""
        task = self.session.task
        if task.status is not TaskStatus.GENERATING:
            return
        if self._token is not None:
            self._token.cancel()
        task.status = TaskStatus.STOPPED
        logger.info(f"Stop requested at {task.current}/{task.total}")
