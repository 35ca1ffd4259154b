"""Encoding & request adapter for the Gemini image model.

One submission = both files encoded (concurrently) + exactly one
`generate_content_async` call. The reply is an ordered list of parts; the
first part carrying inline image data wins.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, List, Optional, Tuple

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from PIL import Image

from visionary.config import DEFAULT_IMAGE_MODEL
from visionary.errors import EncodingError, ServiceError, ServiceRateLimited, SimulationError

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = (
    "Your task is to act as a plastic surgery simulator. Take the first image (the 'before' photo) "
    "and apply the distinct facial features from the second image (the 'reference' photo). "
    "Specifically, blend the shape and style of the reference's eyes, nose, and jawline onto the "
    "'before' photo. The result should be a realistic and high-quality image that maintains the "
    "original person's core identity but clearly shows the simulated changes. "
    "Output *only* the final modified image."
)

RATE_LIMITED_MESSAGE = "API rate limit exceeded. Please wait a moment and try again."
GENERIC_FAILURE_MESSAGE = (
    "Failed to generate the simulation. Please ensure the photos are clear and front-facing."
)
NO_IMAGE_MESSAGE = "No image was generated. The AI may not have been able to process the request."


@dataclass
class UploadedImage:
    content: bytes
    mime_type: str
    filename: str = ""

    @property
    def preview_url(self) -> str:
        return to_data_url(self.mime_type, base64.b64encode(self.content).decode("ascii"))


@dataclass(frozen=True)
class EncodedImage:
    data: str  # base64 text
    mime_type: str

    def to_blob(self) -> dict:
        return {"mime_type": self.mime_type, "data": base64.b64decode(self.data)}


@dataclass(frozen=True)
class SimulationRequest:
    before_image: UploadedImage
    reference_image: UploadedImage
    instruction: str
    credential: Optional[str] = None


def to_data_url(mime_type: str, data: str) -> str:
    return f"data:{mime_type};base64,{data}"


def parse_data_url(url: str) -> Tuple[str, bytes]:
    """Split a `data:<mime>;base64,<data>` URL into its media type and raw bytes."""
    header, sep, data = url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Not a base64 data URL")
    return header[len("data:"):-len(";base64")], base64.b64decode(data)


def encode_image(image: UploadedImage) -> EncodedImage:
    """Return the base64 payload for `image` after checking Pillow can read it."""
    if not image.content:
        raise EncodingError("Failed to read file as base64.")
    try:
        with Image.open(BytesIO(image.content)) as img:
            img.verify()
    except (OSError, SyntaxError, ValueError) as e:
        logger.warning("Could not read %s as an image: %s", image.filename or "upload", e)
        raise EncodingError("Failed to read file as base64.") from e
    return EncodedImage(data=base64.b64encode(image.content).decode("ascii"), mime_type=image.mime_type)


async def encode_images(before: UploadedImage, reference: UploadedImage) -> Tuple[EncodedImage, EncodedImage]:
    before_part, reference_part = await asyncio.gather(
        asyncio.to_thread(encode_image, before),
        asyncio.to_thread(encode_image, reference),
    )
    return before_part, reference_part


def resolve_instruction(text: Optional[str]) -> str:
    if text is None or text.strip() == "":
        return DEFAULT_PROMPT
    return text


def build_contents(before: EncodedImage, reference: EncodedImage, instruction: str) -> List[Any]:
    return [before.to_blob(), reference.to_blob(), instruction]


def extract_image(response) -> str:
    """Turn the first inline-image part of a Gemini reply into a `data:` URL."""
    candidates = getattr(response, "candidates", None) or []
    if candidates:
        content = getattr(candidates[0], "content", None)
        for part in getattr(content, "parts", None) or []:
            inline_data = getattr(part, "inline_data", None)
            if inline_data and inline_data.data:
                data = inline_data.data
                if isinstance(data, (bytes, bytearray)):
                    data = base64.b64encode(data).decode("ascii")
                return to_data_url(inline_data.mime_type, data)

    message = NO_IMAGE_MESSAGE
    feedback = getattr(response, "prompt_feedback", None)
    block_reason = getattr(feedback, "block_reason", None) if feedback else None
    if block_reason:
        message = f"{message} Reason: {getattr(block_reason, 'name', block_reason)}"
    raise ServiceError(message)


def is_rate_limited(exc: BaseException) -> bool:
    if isinstance(exc, google_exceptions.ResourceExhausted):
        return True
    if getattr(exc, "code", None) == 429:
        return True
    return "429" in str(exc)


def classify_failure(exc: BaseException) -> SimulationError:
    if is_rate_limited(exc):
        return ServiceRateLimited(RATE_LIMITED_MESSAGE)
    detail = str(exc).strip()
    if not detail:
        return ServiceError(GENERIC_FAILURE_MESSAGE)
    return ServiceError(f"An error occurred during the API call: {detail}")


def _gemini_model(credential: str, model_name: str):
    genai.configure(api_key=credential)
    return genai.GenerativeModel(model_name=model_name)


async def generate_simulation(
    request: SimulationRequest,
    model_name: str = DEFAULT_IMAGE_MODEL,
    model_factory: Optional[Callable[[str, str], Any]] = None,
) -> str:
    """Send one simulation request and return the resulting image as a `data:` URL.

    Raises `EncodingError` before any network traffic if a file is unreadable,
    `ServiceRateLimited`/`ServiceError` if the call fails, and `ServiceError`
    if the reply contains no image.
    """
    before_part, reference_part = await encode_images(request.before_image, request.reference_image)
    contents = build_contents(before_part, reference_part, resolve_instruction(request.instruction))

    factory = model_factory or _gemini_model
    logger.info("Requesting simulation from %s", model_name)
    try:
        model = factory(request.credential, model_name)
        response = await model.generate_content_async(
            contents,
            generation_config={"candidate_count": 1},
        )
    except Exception as e:
        logger.error("Error calling Gemini API: %s", e)
        raise classify_failure(e) from e

    result = extract_image(response)
    logger.info("Simulation image received from %s", model_name)
    return result
