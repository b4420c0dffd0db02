"""Editor-facing pieces: host protocol, classification and the preview window."""

from .classifier import FileClassifier, is_tracking_path
from .host import PREVIEW_BUFFER_NAME, EditorHost, HostError
from .preview_model import PreviewState
from .preview_window import PreviewWindowManager

__all__ = [
    "EditorHost",
    "FileClassifier",
    "HostError",
    "PREVIEW_BUFFER_NAME",
    "PreviewState",
    "PreviewWindowManager",
    "is_tracking_path",
]
