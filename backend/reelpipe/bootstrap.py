"""Runtime wiring: build every component from explicit settings at startup."""

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from reelpipe.config import Settings
from reelpipe.db import create_engine, create_session_factory, init_database, shutdown
from reelpipe.orchestrator.engine import PipelineEngine
from reelpipe.services.blob_store import BlobStore, create_blob_store
from reelpipe.services.composer import MediaComposer
from reelpipe.services.execution_store import ExecutionStore
from reelpipe.services.imagegen import ReplicateImageAdapter
from reelpipe.services.llm import LLMAdapter, get_adapter
from reelpipe.services.speech import ElevenLabsSpeechAdapter

logger = logging.getLogger(__name__)


@dataclass
class ReelServices:
    """Everything a pipeline run or an API request needs."""

    settings: Settings
    db_engine: Optional[AsyncEngine]
    session_factory: Optional[async_sessionmaker[AsyncSession]]
    store: ExecutionStore
    blob_store: BlobStore
    composer: MediaComposer
    llm: LLMAdapter
    speech: ElevenLabsSpeechAdapter
    images: ReplicateImageAdapter
    engine: PipelineEngine
    rng: random.Random = field(default_factory=random.Random)

    async def init(self) -> None:
        """Create the database schema if needed."""
        if self.db_engine is not None:
            await init_database(self.db_engine)

    async def aclose(self) -> None:
        """Close HTTP clients and dispose of the database engine."""
        await self.llm.aclose()
        await self.speech.aclose()
        await self.images.aclose()
        if self.db_engine is not None:
            await shutdown(self.db_engine)


def build_services(
    settings: Settings,
    progress_callback: Optional[Callable[[str], None]] = None,
) -> ReelServices:
    """Construct all components from ``settings``."""
    storage = settings.storage
    providers = settings.providers
    pipeline = settings.pipeline

    db_engine = create_engine(storage.database_url)
    session_factory = create_session_factory(db_engine)
    store = ExecutionStore(session_factory, page_size=storage.list_page_size)

    blob_store = create_blob_store(storage)
    composer = MediaComposer(blob_store, settings.media, tmp_dir=storage.tmp_dir)

    llm = get_adapter(settings.models.script_llm, settings)
    speech = ElevenLabsSpeechAdapter(
        api_key=providers.elevenlabs_api_key,
        voice_id=providers.elevenlabs_voice_id,
        base_url=providers.elevenlabs_base_url,
        timeout=providers.request_timeout,
        max_retries=pipeline.retry_max_attempts,
        retry_base_delay=pipeline.retry_base_delay,
    )
    images = ReplicateImageAdapter(
        api_token=providers.replicate_api_token,
        model=settings.models.image_model,
        base_url=providers.replicate_base_url,
        timeout=providers.request_timeout,
        max_retries=pipeline.retry_max_attempts,
        retry_base_delay=pipeline.retry_base_delay,
    )

    logger.info(
        f"Services ready: db={db_engine.url.render_as_string(hide_password=True)} "
        f"blobs={storage.blob_backend} llm={settings.models.script_llm}"
    )
    return ReelServices(
        settings=settings,
        db_engine=db_engine,
        session_factory=session_factory,
        store=store,
        blob_store=blob_store,
        composer=composer,
        llm=llm,
        speech=speech,
        images=images,
        engine=PipelineEngine(store, progress_callback=progress_callback),
    )
