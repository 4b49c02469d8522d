"""MediaComposer single-clip, batch and merge behaviour against a fake ffmpeg."""

import json

import pytest

from conftest import FakeFFmpeg
from reelpipe.config import MediaConfig
from reelpipe.errors import BlobNotFoundError, CompositionError
from reelpipe.services.blob_store import LocalBlobStore
from reelpipe.services.composer import MediaComposer, VideoInput, VideoOptions, concat_entry
from reelpipe.services.probe import Resolution


@pytest.fixture
def work_dir(tmp_path):
    return tmp_path / "work"


@pytest.fixture
def composer(blob_store, fake_ffmpeg, work_dir):
    return MediaComposer(blob_store, MediaConfig(), tmp_dir=work_dir, runner=fake_ffmpeg)


async def _seed(blob_store, scenes=3):
    for n in range(1, scenes + 1):
        await blob_store.put(f"x/images/episode-{n}-0.jpg", f"IMG{n}".encode(), content_type="image/jpeg")
        await blob_store.put(f"x/narrations/episode-{n}.mp3", f"AUD{n}".encode(), content_type="audio/mpeg")


def _leftovers(work_dir):
    return list(work_dir.iterdir()) if work_dir.exists() else []


@pytest.mark.asyncio
async def test_compose_uploads_clip_with_metadata(composer, blob_store, fake_ffmpeg, work_dir):
    await _seed(blob_store, 1)

    key = await composer.compose("x/images/episode-1-0.jpg", "x/narrations/episode-1.mp3", "x/videos/episode-1.mp4")

    assert key == "x/videos/episode-1.mp4"
    clip = await blob_store.get(key)
    assert clip.body == b"CLIP[IMG1+AUD1]"
    assert clip.content_type == "video/mp4"
    assert clip.metadata == {
        "generated-by": "ffmpeg",
        "source-image": "x/images/episode-1-0.jpg",
        "source-audio": "x/narrations/episode-1.mp3",
        "duration": "10.0",
        "resolution": "1024x1792",
    }
    assert _leftovers(work_dir) == []


@pytest.mark.asyncio
async def test_compose_command_encodes_as_configured(composer, blob_store, fake_ffmpeg):
    await _seed(blob_store, 1)

    await composer.compose(
        "x/images/episode-1-0.jpg",
        "x/narrations/episode-1.mp3",
        "x/videos/episode-1.mp4",
        VideoOptions(resolution=Resolution(1080, 1920)),
    )

    cmd = fake_ffmpeg.ffmpeg_calls[0]
    assert cmd[cmd.index("-loop") + 1] == "1"
    assert cmd[cmd.index("-c:v") + 1] == "libx264"
    assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"
    assert cmd[cmd.index("-r") + 1] == "60"
    assert cmd[cmd.index("-t") + 1] == "10.0"
    assert cmd[cmd.index("-c:a") + 1] == "aac"
    assert cmd[cmd.index("-b:a") + 1] == "192k"
    assert cmd[cmd.index("-f") + 1] == "mp4"
    graph = cmd[cmd.index("-filter_complex") + 1]
    assert graph.startswith("[0:v]scale=8000:-1,zoompan=z='min(zoom+0.000833,1.5)':d=600")
    assert graph.endswith(":s=1080x1920:fps=60[v]")


@pytest.mark.asyncio
async def test_overrides_skip_probing(blob_store, work_dir):
    ffmpeg = FakeFFmpeg()
    composer = MediaComposer(blob_store, MediaConfig(), tmp_dir=work_dir, runner=ffmpeg)
    await _seed(blob_store, 1)

    await composer.compose(
        "x/images/episode-1-0.jpg",
        "x/narrations/episode-1.mp3",
        "out.mp4",
        VideoOptions(resolution=Resolution(720, 1280), duration=2.5),
    )

    assert [c[0] for c in ffmpeg.calls] == ["ffmpeg"]
    assert (await blob_store.get("out.mp4")).metadata["duration"] == "2.5"


@pytest.mark.asyncio
async def test_compose_missing_blob_raises_and_cleans_up(composer, blob_store, work_dir):
    await _seed(blob_store, 1)

    with pytest.raises(BlobNotFoundError):
        await composer.compose("x/images/episode-1-0.jpg", "x/narrations/missing.mp3", "out.mp4")
    assert _leftovers(work_dir) == []


@pytest.mark.asyncio
async def test_compose_encoder_failure_raises_and_cleans_up(blob_store, work_dir):
    composer = MediaComposer(
        blob_store, MediaConfig(), tmp_dir=work_dir, runner=FakeFFmpeg(fail_on={"libx264"})
    )
    await _seed(blob_store, 1)

    with pytest.raises(CompositionError, match="Invalid data"):
        await composer.compose("x/images/episode-1-0.jpg", "x/narrations/episode-1.mp3", "out.mp4")
    assert _leftovers(work_dir) == []
    with pytest.raises(BlobNotFoundError):
        await blob_store.get("out.mp4")


@pytest.mark.asyncio
async def test_batch_isolates_failures_in_input_order(composer, blob_store, work_dir):
    await _seed(blob_store, 3)
    inputs = [
        VideoInput("x/images/episode-1-0.jpg", "x/narrations/episode-1.mp3", "v/1.mp4"),
        VideoInput("x/images/episode-2-0.jpg", "x/narrations/unreadable.mp3", "v/2.mp4"),
        VideoInput("x/images/episode-3-0.jpg", "x/narrations/episode-3.mp3", "v/3.mp4"),
    ]

    results = await composer.compose_batch(inputs)

    assert [r.output_key for r in results] == ["v/1.mp4", "v/2.mp4", "v/3.mp4"]
    assert [r.ok for r in results] == [True, False, True]
    assert "unreadable.mp3" in results[1].error
    assert (await blob_store.get("v/3.mp4")).body == b"CLIP[IMG3+AUD3]"
    assert _leftovers(work_dir) == []


@pytest.mark.asyncio
async def test_batch_with_concurrency_keeps_order(composer, blob_store):
    await _seed(blob_store, 3)
    inputs = [
        VideoInput(f"x/images/episode-{n}-0.jpg", f"x/narrations/episode-{n}.mp3", f"v/{n}.mp4")
        for n in (1, 2, 3)
    ]

    results = await composer.compose_batch(inputs, concurrency=3)

    assert [r.output_key for r in results] == ["v/1.mp4", "v/2.mp4", "v/3.mp4"]
    assert all(r.ok for r in results)


@pytest.mark.asyncio
async def test_merge_preserves_order_and_tags_sources(composer, blob_store, fake_ffmpeg, work_dir):
    for n, body in ((1, b"AAA"), (2, b"BBB"), (3, b"CCC")):
        await blob_store.put(f"v/{n}.mp4", body)
    keys = ["v/3.mp4", "v/1.mp4", "v/2.mp4"]

    result = await composer.merge(keys, "v/merged.mp4")

    assert result.ok and result.output_key == "v/merged.mp4"
    merged = await blob_store.get("v/merged.mp4")
    assert merged.body == b"CCCAAABBB"
    assert json.loads(merged.metadata["source-videos"]) == keys
    assert merged.metadata["generated-by"] == "ffmpeg-merge"
    assert "merge-date" in merged.metadata

    cmd = fake_ffmpeg.ffmpeg_calls[-1]
    assert cmd[cmd.index("-c") + 1] == "copy"
    assert cmd[cmd.index("-safe") + 1] == "0"
    assert _leftovers(work_dir) == []


@pytest.mark.asyncio
async def test_merge_same_key_twice_plays_twice(composer, blob_store):
    await blob_store.put("v/a.mp4", b"A")
    await blob_store.put("v/b.mp4", b"B")

    await composer.merge(["v/a.mp4", "v/b.mp4", "v/a.mp4"], "v/m.mp4")

    assert (await blob_store.get("v/m.mp4")).body == b"ABA"


@pytest.mark.asyncio
async def test_merge_failure_is_returned_not_raised(blob_store, work_dir):
    composer = MediaComposer(
        blob_store, MediaConfig(), tmp_dir=work_dir, runner=FakeFFmpeg(fail_on={"concat"})
    )
    await blob_store.put("v/1.mp4", b"A")

    result = await composer.merge(["v/1.mp4"], "v/merged.mp4")

    assert not result.ok
    assert result.output_key == "v/merged.mp4"
    assert "Invalid data" in result.error
    assert _leftovers(work_dir) == []


@pytest.mark.asyncio
async def test_merge_missing_input_is_returned(composer):
    result = await composer.merge(["v/ghost.mp4"], "v/merged.mp4")
    assert not result.ok
    assert "v/ghost.mp4" in result.error


@pytest.mark.asyncio
async def test_merge_nothing(composer):
    result = await composer.merge([], "v/merged.mp4")
    assert result.error == "No videos to merge"


@pytest.mark.asyncio
async def test_rerun_overwrites_output(composer, blob_store):
    await blob_store.put("v/1.mp4", b"old")
    await composer.merge(["v/1.mp4"], "v/out.mp4")
    await blob_store.put("v/1.mp4", b"new")
    await composer.merge(["v/1.mp4"], "v/out.mp4")

    assert (await blob_store.get("v/out.mp4")).body == b"new"


class DenyingBlobStore(LocalBlobStore):
    """Local store whose reads fail with a non-storage error under ``bad/``."""

    async def get(self, key, bucket=None):
        if key.startswith("bad/"):
            raise RuntimeError("AccessDenied")
        return await super().get(key, bucket)


@pytest.mark.asyncio
async def test_batch_survives_unexpected_errors(tmp_path, work_dir):
    store = DenyingBlobStore(tmp_path / "blobs", "working")
    await _seed(store, 3)
    composer = MediaComposer(store, MediaConfig(), tmp_dir=work_dir, runner=FakeFFmpeg())
    inputs = [
        VideoInput("x/images/episode-1-0.jpg", "x/narrations/episode-1.mp3", "v/1.mp4"),
        VideoInput("bad/episode-2-0.jpg", "x/narrations/episode-2.mp3", "v/2.mp4"),
        VideoInput("x/images/episode-3-0.jpg", "x/narrations/episode-3.mp3", "v/3.mp4"),
    ]

    results = await composer.compose_batch(inputs)

    assert [r.ok for r in results] == [True, False, True]
    assert results[1].error == "AccessDenied"
    assert _leftovers(work_dir) == []


@pytest.mark.asyncio
async def test_merge_unexpected_error_is_returned(tmp_path, work_dir):
    store = DenyingBlobStore(tmp_path / "blobs", "working")
    composer = MediaComposer(store, MediaConfig(), tmp_dir=work_dir, runner=FakeFFmpeg())

    result = await composer.merge(["bad/clip.mp4"], "out.mp4")

    assert not result.ok
    assert result.error == "AccessDenied"
    assert _leftovers(work_dir) == []


@pytest.mark.asyncio
async def test_merge_keys_with_single_quotes(composer, blob_store, fake_ffmpeg):
    await blob_store.put("clips/it's.mp4", b"QUOTE")
    await blob_store.put("clips/plain.mp4", b"PLAIN")

    result = await composer.merge(["clips/it's.mp4", "clips/plain.mp4"], "clips/merged.mp4")

    assert result.ok
    assert (await blob_store.get("clips/merged.mp4")).body == b"QUOTEPLAIN"


def test_concat_entry_escapes_single_quotes(tmp_path):
    path = tmp_path / "video-0-it's.mp4"
    line = concat_entry(path)
    assert line == "file '" + str(path.resolve()).replace("'", "'\\''") + "'\n"
    assert "it'\\''s.mp4" in line
