"""Per-browser-session controller for the before/reference simulation flow.

State is a single tagged value, one of `Idle`, `Ready`, `Pending`,
`Succeeded` or `Failed`; the images and instruction live alongside it.

    Idle --(both images)--> Ready --submit--> Pending --> Succeeded | Failed

Selecting an image (outside `Pending`) drops any result or error and lands on
`Ready` or `Idle` depending on whether both images are present. `reset()`
always lands on `Idle` with the default instruction.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, ClassVar, Optional, Union

from visionary.config import DEFAULT_MAX_UPLOAD_BYTES
from visionary.errors import (
    FileTooLargeError,
    SessionBusyError,
    SimulationError,
    UnsupportedImageTypeError,
    ValidationError,
)
from visionary.gemini_service import (
    DEFAULT_PROMPT,
    SimulationRequest,
    UploadedImage,
    classify_failure,
    generate_simulation,
)
from visionary.preferences import CREDENTIAL_KEY, PROMPT_KEY, InMemoryPreferenceStore, PreferenceStore

logger = logging.getLogger(__name__)

ACCEPTED_MIME_TYPES = ("image/jpeg", "image/png")
MAX_INSTRUCTION_LENGTH = 300

MISSING_IMAGES_MESSAGE = "Please upload both your photo and a reference photo."
MISSING_CREDENTIAL_MESSAGE = "API key is not set. Add GEMINI_API_KEY to .env or save a key in preferences."


class ImageSlot(str, Enum):
    BEFORE = "before"
    REFERENCE = "reference"


class SessionStatus(str, Enum):
    IDLE = "idle"
    READY = "ready"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Idle:
    status: ClassVar[SessionStatus] = SessionStatus.IDLE


@dataclass(frozen=True)
class Ready:
    status: ClassVar[SessionStatus] = SessionStatus.READY


@dataclass(frozen=True, eq=False)
class Pending:
    # Identity comparison: each submission gets its own Pending marker.
    status: ClassVar[SessionStatus] = SessionStatus.PENDING


@dataclass(frozen=True)
class Succeeded:
    result_url: str
    status: ClassVar[SessionStatus] = SessionStatus.SUCCEEDED


@dataclass(frozen=True)
class Failed:
    kind: str
    message: str
    status: ClassVar[SessionStatus] = SessionStatus.FAILED


SessionState = Union[Idle, Ready, Pending, Succeeded, Failed]

Generator = Callable[[SimulationRequest], Awaitable[str]]


class SimulationSession:
    def __init__(
        self,
        generate: Generator = generate_simulation,
        preferences: Optional[PreferenceStore] = None,
        default_credential: Optional[str] = None,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ):
        self._generate = generate
        self.preferences = preferences if preferences is not None else InMemoryPreferenceStore()
        self.default_credential = default_credential
        self.max_upload_bytes = max_upload_bytes

        self.before_image: Optional[UploadedImage] = None
        self.reference_image: Optional[UploadedImage] = None
        self.instruction = self.preferences.get(PROMPT_KEY) or DEFAULT_PROMPT
        self.state: SessionState = Idle()

    @property
    def status(self) -> SessionStatus:
        return self.state.status

    @property
    def has_both_images(self) -> bool:
        return bool(
            self.before_image
            and self.before_image.content
            and self.reference_image
            and self.reference_image.content
        )

    @property
    def can_submit(self) -> bool:
        return self.has_both_images and isinstance(self.state, (Ready, Failed))

    def _transition(self, state: SessionState) -> SessionState:
        logger.debug("Session %s -> %s", self.state.status.value, state.status.value)
        self.state = state
        return state

    def _readiness(self) -> SessionState:
        return Ready() if self.has_both_images else Idle()

    def _fail(self, error: SimulationError) -> SessionState:
        logger.warning("Simulation failed (%s): %s", error.kind, error.message)
        return self._transition(Failed(kind=error.kind, message=error.message))

    def _ensure_not_pending(self) -> None:
        if isinstance(self.state, Pending):
            raise SessionBusyError("A simulation is already in progress.")

    def select_image(self, slot, content: bytes, mime_type: str, filename: str = "") -> SessionState:
        """Store the photo for `slot`. Refused files leave the session untouched."""
        slot = ImageSlot(slot)
        self._ensure_not_pending()
        if len(content) > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes // (1024 * 1024)
            raise FileTooLargeError(f"File size exceeds {limit_mb}MB. Please choose a smaller image.")
        if mime_type not in ACCEPTED_MIME_TYPES:
            raise UnsupportedImageTypeError("Only JPEG and PNG images are supported.")

        image = UploadedImage(content=content, mime_type=mime_type, filename=filename)
        if slot is ImageSlot.BEFORE:
            self.before_image = image
        else:
            self.reference_image = image
        return self._transition(self._readiness())

    def set_instruction(self, text: str) -> None:
        self._ensure_not_pending()
        if len(text) > MAX_INSTRUCTION_LENGTH:
            raise ValidationError(f"Instructions are limited to {MAX_INSTRUCTION_LENGTH} characters.")
        self.instruction = text
        self.preferences.set(PROMPT_KEY, text)

    def _resolve_credential(self, credential: Optional[str]) -> Optional[str]:
        return credential or self.preferences.get(CREDENTIAL_KEY) or self.default_credential

    async def submit(self, credential: Optional[str] = None) -> SessionState:
        """Run one simulation. Returns the state the session settled in."""
        self._ensure_not_pending()
        if isinstance(self.state, Succeeded):
            raise SessionBusyError("Start over or choose a new photo before simulating again.")

        if not self.has_both_images:
            return self._fail(ValidationError(MISSING_IMAGES_MESSAGE))
        resolved = self._resolve_credential(credential)
        if not resolved:
            return self._fail(ValidationError(MISSING_CREDENTIAL_MESSAGE))

        request = SimulationRequest(
            before_image=self.before_image,
            reference_image=self.reference_image,
            instruction=self.instruction,
            credential=resolved,
        )
        pending = self._transition(Pending())
        try:
            result_url = await self._generate(request)
        except SimulationError as e:
            outcome: SessionState = Failed(kind=e.kind, message=e.message)
        except Exception as e:
            logger.exception("Unexpected error during simulation")
            error = classify_failure(e)
            outcome = Failed(kind=error.kind, message=error.message)
        else:
            outcome = Succeeded(result_url=result_url)

        if self.state is not pending:
            # Reset while the call was in flight; the reply belongs to a discarded attempt.
            logger.info("Discarding simulation outcome after reset")
            return self.state
        if isinstance(outcome, Failed):
            logger.warning("Simulation failed (%s): %s", outcome.kind, outcome.message)
        return self._transition(outcome)

    def reset(self) -> SessionState:
        self.before_image = None
        self.reference_image = None
        # The saved draft is left alone; it only seeds the next session.
        self.instruction = DEFAULT_PROMPT
        return self._transition(Idle())

    def snapshot(self) -> dict:
        state = self.state
        return {
            "status": state.status.value,
            "before_preview": self.before_image.preview_url if self.before_image else None,
            "reference_preview": self.reference_image.preview_url if self.reference_image else None,
            "instruction": self.instruction,
            "result_url": state.result_url if isinstance(state, Succeeded) else None,
            "error_kind": state.kind if isinstance(state, Failed) else None,
            "error_message": state.message if isinstance(state, Failed) else None,
            "can_submit": self.can_submit,
        }
