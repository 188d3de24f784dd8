"""Wire the pipeline components together from settings."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from nudgescope.analysis.analyzer import TranscriptAnalyzer
from nudgescope.batch.coordinator import BatchCoordinator
from nudgescope.batch.metrics import AnalysisMetrics
from nudgescope.config import AnalysisSettings
from nudgescope.index.store import ChromaIndex, Embedder
from nudgescope.index.sync import IndexSync
from nudgescope.llm.client import create_client
from nudgescope.storage.database import Database
from nudgescope.storage.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: AnalysisSettings
    index: ChromaIndex
    index_sync: IndexSync
    gateway: PersistenceGateway
    analyzer: TranscriptAnalyzer
    metrics: AnalysisMetrics
    coordinator: BatchCoordinator

    def open_db(self) -> Database:
        return Database(self.settings.db_path)


def build_services(
    settings: AnalysisSettings,
    llm_client=None,
    embedder: Embedder | None = None,
    chroma_client=None,
    sleep: Callable[[float], None] = time.sleep,
) -> Services:
    """Build one set of components sharing a metrics instance and run state.

    The completion client is created from `settings.llm_mode` unless one is
    passed in.
    """
    if llm_client is None:
        llm_client = create_client(settings.llm_mode, settings.model, settings.ollama_host)
    logger.debug(f"Using completion client {type(llm_client).__name__}")

    # Create the schema before any worker opens a connection
    with Database(settings.db_path):
        pass

    index = ChromaIndex(
        settings.index_dir,
        collection_name=settings.collection_name,
        embedder=embedder,
        client=chroma_client,
    )
    index_sync = IndexSync(index, settings.db_path)
    gateway = PersistenceGateway(settings.db_path, index_sync)
    analyzer = TranscriptAnalyzer(
        llm_client, gateway=gateway, retriever=index, settings=settings, sleep=sleep
    )
    metrics = AnalysisMetrics()
    coordinator = BatchCoordinator(
        analyzer, gateway, settings.db_path, settings=settings, metrics=metrics, sleep=sleep
    )
    return Services(
        settings=settings,
        index=index,
        index_sync=index_sync,
        gateway=gateway,
        analyzer=analyzer,
        metrics=metrics,
        coordinator=coordinator,
    )
