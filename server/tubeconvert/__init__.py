"""tubeconvert backend application package."""

from .main import app  # noqa: F401
from .tasks import celery_app  # noqa: F401

__all__ = ["app", "celery_app"]
