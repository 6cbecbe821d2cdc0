# Use Cases
from src.application.usecases.extract_clip import (
    ClientError,
    ExtractClipConfig,
    ExtractClipUseCase,
    to_client_error,
)
from src.application.usecases.resource_janitor import JobResources, ResourceJanitor

__all__ = [
    "ExtractClipUseCase",
    "ExtractClipConfig",
    "ClientError",
    "to_client_error",
    "JobResources",
    "ResourceJanitor",
]
