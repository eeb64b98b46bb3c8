"""Raw corpus sources (HTTP file server or a local directory)."""

from src.providers.corpus.file_corpus_source import FileCorpusSource
from src.providers.corpus.http_corpus_source import HttpCorpusSource

__all__ = ["FileCorpusSource", "HttpCorpusSource"]
