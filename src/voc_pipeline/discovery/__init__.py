"""Review source discovery."""

from voc_pipeline.discovery.source_resolver import SourceResolver, rank_candidate_urls

__all__ = ["SourceResolver", "rank_candidate_urls"]
