"""Shared fixtures: temp-dir backed stores, fake ffmpeg/ffprobe and fake providers."""

import json
import random
import subprocess
from pathlib import Path
from typing import Optional

import pytest
import pytest_asyncio

from reelpipe.bootstrap import ReelServices
from reelpipe.config import MediaConfig, PipelineConfig, Settings, StorageConfig
from reelpipe.db import create_engine, create_session_factory, init_database
from reelpipe.errors import AdapterError
from reelpipe.orchestrator.engine import PipelineEngine
from reelpipe.services.blob_store import LocalBlobStore
from reelpipe.services.composer import MediaComposer
from reelpipe.services.execution_store import ExecutionStore
from reelpipe.services.llm.base import LLMAdapter
from reelpipe.services.outcome import Outcome

SCRIPT_REPLY = """```json
[
  {"day": 1, "event": "A fox finds a lantern", "image_prompt": "fox with lantern in snow",
   "voice_narration": "On the first day, the fox found a lantern."},
  {"day": 2, "event": "The lantern speaks", "image_prompt": "glowing lantern in a den",
   "voice_narration": "On the second day, the lantern spoke."},
  {"day": 3, "event": "They travel north", "image_prompt": "fox walking north at dawn",
   "voice_narration": "On the third day, they travelled north."}
]
```"""


class FakeFFmpeg:
    """Stands in for the ffmpeg and ffprobe binaries.

    Compose writes ``CLIP[<image>+<audio>]``; merge concatenates the listed
    files in order; ffprobe reports a fixed duration and resolution. Any
    command containing a string from ``fail_on`` exits non-zero.
    """

    def __init__(self, duration: float = 10.0, width: int = 1024, height: int = 1792, fail_on=()):
        self.duration = duration
        self.width = width
        self.height = height
        self.fail_on = set(fail_on)
        self.calls: list[list[str]] = []

    def __call__(self, cmd: list[str]) -> subprocess.CompletedProcess:
        self.calls.append(list(cmd))
        if any(marker in arg for marker in self.fail_on for arg in cmd):
            raise subprocess.CalledProcessError(
                1, cmd, output=b"", stderr=b"Invalid data found when processing input"
            )

        if Path(cmd[0]).name == "ffprobe":
            payload = {
                "format": {"duration": str(self.duration)},
                "streams": [{"width": self.width, "height": self.height}],
            }
            return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(payload).encode(), stderr=b"")

        output = Path(cmd[-1])
        if "concat" in cmd:
            list_file = Path(cmd[cmd.index("-i") + 1])
            body = b""
            for line in list_file.read_text().splitlines():
                body += Path(line[len("file '"):-1].replace("'\\''", "'")).read_bytes()
            output.write_bytes(body)
        else:
            inputs = [Path(cmd[i + 1]) for i, arg in enumerate(cmd) if arg == "-i"]
            image, audio = (p.read_bytes() for p in inputs)
            output.write_bytes(b"CLIP[" + image + b"+" + audio + b"]")
        return subprocess.CompletedProcess(cmd, 0, stdout=b"", stderr=b"")

    @property
    def ffmpeg_calls(self) -> list[list[str]]:
        return [c for c in self.calls if Path(c[0]).name == "ffmpeg"]


class FakeLLM(LLMAdapter):
    model_id = "fake-llm"

    def __init__(self, reply: str = SCRIPT_REPLY, error: Optional[str] = None):
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []

    async def complete(self, prompt, *, temperature=0.7, system_prompt=None, max_retries=3):
        self.calls.append({"prompt": prompt, "temperature": temperature})
        if self.error:
            raise AdapterError(self.error)
        return self.reply


class FakeSpeech:
    def __init__(self, fail_texts=()):
        self.fail_texts = set(fail_texts)
        self.calls: list[str] = []

    async def text_to_speech(self, text, options=None):
        self.calls.append(text)
        if text in self.fail_texts:
            return Outcome.failure("ElevenLabs API error: HTTP 401: quota exceeded")
        return Outcome.success(f"MP3<{text}>".encode())

    async def aclose(self):
        pass


class FakeImages:
    model = "fake/flux"

    def __init__(self, fail_prompts=()):
        self.fail_prompts = set(fail_prompts)
        self.calls: list[str] = []

    async def text_to_image(self, prompt, options=None):
        self.calls.append(prompt)
        if prompt in self.fail_prompts:
            return Outcome.failure("Image generation failed: NSFW content detected")
        return Outcome.success([f"https://images.test/{prompt.replace(' ', '-')}.jpg"])

    async def download(self, url):
        return Outcome.success(f"JPG<{url.rsplit('/', 1)[-1]}>".encode())

    async def aclose(self):
        pass


def make_settings(tmp_path: Path, **pipeline) -> Settings:
    return Settings(
        storage=StorageConfig(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'reelpipe-test.db'}",
            tmp_dir=tmp_path / "work",
            blob_root=tmp_path / "blobs",
            working_bucket="working",
            public_bucket="public",
            list_page_size=2,
        ),
        media=MediaConfig(),
        pipeline=PipelineConfig(retry_base_delay=0, run_deadline_seconds=None, **pipeline),
    )


def build_test_services(
    tmp_path: Path,
    llm: Optional[LLMAdapter] = None,
    speech: Optional[FakeSpeech] = None,
    images: Optional[FakeImages] = None,
    ffmpeg: Optional[FakeFFmpeg] = None,
    **pipeline,
) -> ReelServices:
    """Wire real stores and composer around fake providers and a fake ffmpeg.

    Nothing here touches the event loop; the database is created lazily.
    """
    settings = make_settings(tmp_path, **pipeline)
    db_engine = create_engine(settings.storage.database_url)
    session_factory = create_session_factory(db_engine)
    store = ExecutionStore(session_factory, page_size=settings.storage.list_page_size)
    blob_store = LocalBlobStore(settings.storage.blob_root, settings.storage.working_bucket)
    composer = MediaComposer(
        blob_store,
        settings.media,
        tmp_dir=settings.storage.tmp_dir,
        runner=ffmpeg or FakeFFmpeg(),
    )
    return ReelServices(
        settings=settings,
        db_engine=db_engine,
        session_factory=session_factory,
        store=store,
        blob_store=blob_store,
        composer=composer,
        llm=llm or FakeLLM(),
        speech=speech or FakeSpeech(),
        images=images or FakeImages(),
        engine=PipelineEngine(store),
        rng=random.Random(1234),
    )


@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpeg()


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs", "working")


@pytest_asyncio.fixture
async def store(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await init_database(engine)
    yield ExecutionStore(create_session_factory(engine), page_size=2)
    await engine.dispose()


@pytest_asyncio.fixture
async def services(tmp_path):
    services = build_test_services(tmp_path)
    await services.init()
    yield services
    await services.aclose()
