from .base import JobSource, TTLCache
from .hackernews import HackerNewsSource
from .remoteok import RemoteOKSource
from .remotive import RemotiveSource

from autoapply.config import AgentSettings
from autoapply.llm import LLMClient
from autoapply.log import get_logger
from autoapply.store import JsonStore

log = get_logger(__name__)

__all__ = [
    "JobSource", "TTLCache", "HackerNewsSource", "RemoteOKSource",
    "RemotiveSource", "get_sources",
]


def get_sources(settings: AgentSettings, store: JsonStore, llm: LLMClient) -> list[JobSource]:
    sources: list[JobSource] = []

    for name in settings.sources:
        key = name.lower()
        if key == "remoteok":
            sources.append(RemoteOKSource())
            log.info("Registered source: RemoteOK")
        elif key == "hackernews":
            # Needs the AI extractor; skip rather than fail every comment
            if not llm.configured:
                log.warning("Skipping HackerNews source: no LLM API key configured")
                continue
            sources.append(HackerNewsSource(store, llm))
            log.info("Registered source: HackerNews (Who is hiring)")
        elif key == "remotive":
            sources.append(RemotiveSource())
            log.info("Registered source: Remotive (free, remote jobs)")
        else:
            log.warning("Unknown job source %r in settings; ignoring", name)

    if not sources:
        log.warning("No job sources registered; searches will return nothing")
    return sources
