"""Conversion provider backends."""

from .base import ExtractionProvider, JobProvider, ProviderKind
from .factory import Provider, build_provider

__all__ = ["ExtractionProvider", "JobProvider", "Provider", "ProviderKind", "build_provider"]
