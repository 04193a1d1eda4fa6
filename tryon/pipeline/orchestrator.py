"""Client-side try-on orchestration.

Flow per attempt:
1. Check entitlement (skipped for free retries)
2. Validate both selected images
3. Transcode subject and garment to the upload budget
4. Call the proxy and collect candidate images
5. Commit exactly one candidate to history
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Protocol
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ..config import TryOnConfig
from ..errors import (
    FreeRetryExhausted,
    InvalidInput,
    QuotaExceeded,
    TryOnError,
)
from ..models import HistoryEntry, ImageAsset, TranscodeBudget
from ..services.analytics import Analytics, NullAnalytics, PlausibleAnalytics
from ..services.entitlements import Entitlements
from ..services.history import HistoryStore, InMemoryHistoryStore
from ..services.transcoder import ImageTranscoder
from ..services.tryon_api import TryOnApiClient

logger = logging.getLogger(__name__)


_ROLE_LABELS = {"subject": "your photo", "garment": "the clothing photo"}


class AttemptState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    TRANSCODING = "transcoding"
    AWAITING_RESPONSE = "awaiting_response"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TryOnAttempt(BaseModel):
    """State of a single try-on attempt."""

    result_id: UUID = Field(default_factory=uuid4)
    state: AttemptState = AttemptState.IDLE
    image_count: int = 1
    is_free_retry: bool = False
    candidates: list[bytes] = Field(default_factory=list, repr=False)
    committed: bool = False

    error_kind: str | None = None
    error_title: str | None = None
    error_message: str | None = None

    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def is_loading(self) -> bool:
        return self.state in (
            AttemptState.VALIDATING,
            AttemptState.TRANSCODING,
            AttemptState.AWAITING_RESPONSE,
        )


class TryOnBackend(Protocol):
    async def try_on(
        self,
        subject_bytes: bytes,
        garment_bytes: bytes,
        image_count: int = 1,
        is_free_retry: bool = False,
    ) -> list[bytes]: ...


@dataclass
class _ResultRecord:
    subject: ImageAsset
    garment: ImageAsset
    attempt: TryOnAttempt
    free_retries_used: int = 0


class TryOnOrchestrator:
    """Owns the lifecycle of try-on attempts for one user session.

    Selections survive failures so the user can retry without picking the
    images again.
    """

    def __init__(
        self,
        backend: TryOnBackend,
        entitlements: Entitlements,
        history: HistoryStore,
        budget: TranscodeBudget,
        transcoder: ImageTranscoder | None = None,
        analytics: Analytics | None = None,
        max_uncompressed_bytes: int = 10 * 1024 * 1024,
        max_free_retries: int = 1,
        max_results: int = 10,
        on_state_change: Callable[[TryOnAttempt], None] | None = None,
    ):
        self.backend = backend
        self.entitlements = entitlements
        self.history = history
        self.budget = budget
        self.transcoder = transcoder or ImageTranscoder()
        self.analytics = analytics or NullAnalytics()
        self.max_uncompressed_bytes = max_uncompressed_bytes
        self.max_free_retries = max_free_retries
        self.max_results = max_results
        self.on_state_change = on_state_change

        self.subject_image: ImageAsset | None = None
        self.garment_image: ImageAsset | None = None
        self.current: TryOnAttempt | None = None
        # Most recent last; older results are evicted past max_results
        self._results: OrderedDict[UUID, _ResultRecord] = OrderedDict()

    @classmethod
    def from_config(
        cls,
        config: TryOnConfig,
        entitlements: Entitlements,
        history: HistoryStore | None = None,
        analytics: Analytics | None = None,
        **kwargs,
    ) -> "TryOnOrchestrator":
        """Wire an orchestrator with the default proxy client and transcoder."""
        if analytics is None and config.analytics.endpoint:
            analytics = PlausibleAnalytics(config.analytics)
        return cls(
            backend=TryOnApiClient(config.client),
            entitlements=entitlements,
            history=history or InMemoryHistoryStore(limit=config.client.history_limit),
            budget=ImageTranscoder.budget_from_config(config.transcode),
            transcoder=ImageTranscoder.from_config(config.transcode),
            analytics=analytics,
            max_uncompressed_bytes=config.transcode.max_uncompressed_bytes,
            max_free_retries=config.client.max_free_retries,
            max_results=config.client.history_limit,
            **kwargs,
        )

    # Selection status

    @property
    def state(self) -> AttemptState:
        return self.current.state if self.current else AttemptState.IDLE

    @property
    def can_try_on(self) -> bool:
        return self.subject_image is not None and self.garment_image is not None

    def select_subject(self, image: ImageAsset):
        self.subject_image = image

    def select_garment(self, image: ImageAsset):
        self.garment_image = image

    def reset_selections(self):
        self.subject_image = None
        self.garment_image = None
        self.current = None

    def free_retries_left(self, result_id: UUID) -> int:
        record = self._results.get(result_id)
        if record is None:
            return 0
        return max(0, self.max_free_retries - record.free_retries_used)

    # Attempts

    async def try_on(self, image_count: int = 1) -> TryOnAttempt:
        """Run a paid attempt with the current selections.

        Raises:
            QuotaExceeded: no entitlement and no free uses left today
            TryOnError: any validation, encoding or upstream failure; the
                attempt is left in FAILED with a user-facing message
        """
        if not self.entitlements.is_entitled() and self.entitlements.remaining_free_uses_today() <= 0:
            self._track("blocked", reason=QuotaExceeded.kind)
            raise QuotaExceeded("You've used all free try-ons for today.")

        attempt = TryOnAttempt(image_count=image_count)
        self.current = attempt

        subject, garment = await self._run(attempt, self.subject_image, self.garment_image)

        if not self.entitlements.is_entitled():
            self.entitlements.record_use()
        self._remember(_ResultRecord(subject, garment, attempt))
        await self._auto_commit(attempt)
        return attempt

    async def free_retry(self, result_id: UUID) -> TryOnAttempt:
        """Regenerate a result with the same image pair at no quota cost."""
        record = self._results.get(result_id)
        if record is None:
            raise KeyError(f"Unknown result: {result_id}")
        if record.free_retries_used >= self.max_free_retries:
            raise FreeRetryExhausted("The free retry for this result has already been used.")

        record.free_retries_used += 1
        attempt = TryOnAttempt(
            result_id=result_id,
            image_count=record.attempt.image_count,
            is_free_retry=True,
        )
        self.current = attempt

        await self._run(attempt, record.subject, record.garment)

        record.attempt = attempt
        await self._auto_commit(attempt)
        return attempt

    async def select_candidate(self, result_id: UUID, index: int) -> HistoryEntry:
        """Commit one candidate to history and discard the others."""
        record = self._results.get(result_id)
        if record is None:
            raise KeyError(f"Unknown result: {result_id}")
        attempt = record.attempt
        if attempt.state is not AttemptState.SUCCEEDED or attempt.committed or not attempt.candidates:
            raise ValueError(f"Result {result_id} has no pending candidates")
        if not 0 <= index < len(attempt.candidates):
            raise IndexError(f"Candidate index {index} out of range")

        chosen = attempt.candidates[index]
        entry = HistoryEntry(
            result_id=result_id,
            subject_image=record.subject.data,
            garment_image=record.garment.data,
            result_image=chosen,
        )
        await self.history.append(entry)
        attempt.candidates = [chosen]
        attempt.committed = True
        self._track("selected", candidates=str(attempt.image_count))
        return entry

    def _remember(self, record: _ResultRecord):
        """Store a new result; older uncommitted candidates are released."""
        for older in self._results.values():
            if not older.attempt.committed:
                older.attempt.candidates = []
        self._results[record.attempt.result_id] = record
        while len(self._results) > self.max_results:
            self._results.popitem(last=False)

    async def _auto_commit(self, attempt: TryOnAttempt):
        if len(attempt.candidates) == 1:
            await self.select_candidate(attempt.result_id, 0)

    async def _run(
        self,
        attempt: TryOnAttempt,
        subject: ImageAsset | None,
        garment: ImageAsset | None,
    ) -> tuple[ImageAsset, ImageAsset]:
        """Drive one attempt to SUCCEEDED and return the validated pair."""
        self._track("started", image_count=str(attempt.image_count), free_retry=str(attempt.is_free_retry).lower())
        try:
            self._transition(attempt, AttemptState.VALIDATING)
            subject = self._validate(subject, "subject")
            garment = self._validate(garment, "garment")

            self._transition(attempt, AttemptState.TRANSCODING)
            subject_result, garment_result = await asyncio.gather(
                self.transcoder.transcode(subject, self.budget, role="subject"),
                self.transcoder.transcode(garment, self.budget, role="garment"),
            )

            self._transition(attempt, AttemptState.AWAITING_RESPONSE)
            candidates = await self.backend.try_on(
                subject_result.data,
                garment_result.data,
                image_count=attempt.image_count,
                is_free_retry=attempt.is_free_retry,
            )
        except TryOnError as e:
            logger.warning("Try-on attempt %s failed: %s", attempt.result_id, e)
            attempt.error_kind = e.kind
            attempt.error_title = e.title
            attempt.error_message = e.user_message
            attempt.completed_at = datetime.now()
            self._transition(attempt, AttemptState.FAILED)
            self._track("failed", kind=e.kind)
            raise
        except Exception:
            attempt.error_title = "Error"
            attempt.error_message = "Something went wrong. Please try again."
            attempt.completed_at = datetime.now()
            self._transition(attempt, AttemptState.FAILED)
            raise

        attempt.candidates = candidates
        attempt.completed_at = datetime.now()
        self._transition(attempt, AttemptState.SUCCEEDED)
        self._track("succeeded", images=str(len(candidates)))
        return subject, garment

    def _validate(self, image: ImageAsset | None, role: str) -> ImageAsset:
        label = _ROLE_LABELS[role]
        if image is None:
            if role == "subject":
                raise InvalidInput("Please select a photo of yourself.")
            raise InvalidInput("Please select a clothing item.")
        if image.width <= 0 or image.height <= 0:
            raise InvalidInput(
                f"{label.capitalize()} has invalid dimensions "
                f"({image.width}x{image.height}). Please choose another image."
            )
        if image.estimated_uncompressed_bytes > self.max_uncompressed_bytes:
            raise InvalidInput(
                f"{label.capitalize()} is too large "
                f"({image.width}x{image.height}). Please choose a smaller image."
            )
        return image

    def _transition(self, attempt: TryOnAttempt, state: AttemptState):
        logger.debug("Attempt %s: %s -> %s", attempt.result_id, attempt.state.value, state.value)
        attempt.state = state
        if self.on_state_change is not None:
            self.on_state_change(attempt)

    def _track(self, action: str, **properties: str):
        try:
            self.analytics.track("tryon_interaction", {"action": action, **properties})
        except Exception:
            logger.exception("Analytics event failed")
