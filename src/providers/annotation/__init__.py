"""Semantic-domain classification service adapters."""

from src.providers.annotation.http_annotation_provider import HttpAnnotationProvider

__all__ = ["HttpAnnotationProvider"]
