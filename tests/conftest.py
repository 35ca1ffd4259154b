"""Shared fixtures: tiny real images and fake Gemini replies."""

from io import BytesIO
from types import SimpleNamespace

import pytest
from PIL import Image


def make_image_bytes(fmt="PNG", size=(8, 8), color=(200, 120, 80)):
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def _image_part(data, mime_type="image/png"):
    return SimpleNamespace(text=None, inline_data=SimpleNamespace(mime_type=mime_type, data=data))


def _text_part(text):
    return SimpleNamespace(text=text, inline_data=None)


def _gemini_response(*parts, block_reason=None):
    feedback = SimpleNamespace(block_reason=block_reason) if block_reason else None
    candidate = SimpleNamespace(content=SimpleNamespace(parts=list(parts)))
    return SimpleNamespace(candidates=[candidate], prompt_feedback=feedback)


class FakeModel:
    """Stands in for genai.GenerativeModel; `factory` mimics the model factory hook."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []
        self.created_with = []

    def factory(self, credential, model_name):
        self.created_with.append((credential, model_name))
        return self

    async def generate_content_async(self, contents, generation_config=None):
        self.calls.append(contents)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG")


@pytest.fixture
def image_part():
    return _image_part


@pytest.fixture
def text_part():
    return _text_part


@pytest.fixture
def gemini_response():
    return _gemini_response


@pytest.fixture
def fake_model():
    return FakeModel
