from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from google.genai import types

from storyteller.domain.errors import GenerationError, StagingError
from storyteller.domain.models import VideoSource
from storyteller.infrastructure.gcs_adapter import GCSVideoStager
from storyteller.infrastructure.gemini_adapter import GeminiStoryGenerator


def make_generator(text):
    client = MagicMock()
    client.models.generate_content.return_value = SimpleNamespace(text=text)
    factory = MagicMock(return_value=client)
    return GeminiStoryGenerator(factory, model="gemini-test", prompt="PROMPT"), client, factory


def test_inline_video_is_sent_as_bytes():
    generator, client, factory = make_generator('"Quiet Town Floods"\n\nBody.')

    story = generator.generate(VideoSource(mime_type="video/mp4", data=b"raw"))

    assert story == "Quiet Town Floods\n\nBody."
    kwargs = client.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "gemini-test"
    part, prompt = kwargs["contents"]
    assert isinstance(part, types.Part)
    assert part.inline_data.data == b"raw"
    assert part.inline_data.mime_type == "video/mp4"
    assert prompt == "PROMPT"


def test_staged_video_is_sent_as_uri():
    generator, client, _ = make_generator("Title\n\nBody.")

    generator.generate(VideoSource(mime_type="video/webm", uri="gs://bucket/j/v-a.webm"))

    part = client.models.generate_content.call_args.kwargs["contents"][0]
    assert part.file_data.file_uri == "gs://bucket/j/v-a.webm"
    assert part.file_data.mime_type == "video/webm"


def test_client_is_built_once():
    generator, _, factory = make_generator("Title")
    factory.assert_not_called()

    generator.generate(VideoSource(mime_type="video/mp4", data=b"a"))
    generator.generate(VideoSource(mime_type="video/mp4", data=b"b"))

    factory.assert_called_once()


@pytest.mark.parametrize("text", [None, "", "   \n"])
def test_empty_response(text):
    generator, _, _ = make_generator(text)

    with pytest.raises(GenerationError):
        generator.generate(VideoSource(mime_type="video/mp4", data=b"a"))


def test_client_errors_propagate():
    generator, client, _ = make_generator("unused")
    client.models.generate_content.side_effect = RuntimeError("429 quota exceeded")

    with pytest.raises(RuntimeError, match="quota"):
        generator.generate(VideoSource(mime_type="video/mp4", data=b"a"))


def test_stager_uploads_and_returns_uri():
    client = MagicMock()
    stager = GCSVideoStager("my-bucket", client=client)

    uri = stager.stage("job", "vid", "clip.mp4", b"data", "video/mp4")

    assert uri == "gs://my-bucket/job/vid-clip.mp4"
    client.bucket.assert_called_once_with("my-bucket")
    client.bucket.return_value.blob.assert_called_once_with("job/vid-clip.mp4")
    client.bucket.return_value.blob.return_value.upload_from_string.assert_called_once_with(
        b"data", content_type="video/mp4"
    )


def test_stager_wraps_errors():
    client = MagicMock()
    client.bucket.return_value.blob.return_value.upload_from_string.side_effect = OSError("network down")
    stager = GCSVideoStager("my-bucket", client=client)

    with pytest.raises(StagingError, match="network down"):
        stager.stage("job", "vid", "clip.mp4", b"data", "video/mp4")
