"""patchline - installer, updater and launcher for a packaged game client.

Discovers published builds on the patch host, downloads incremental or full
patches, applies them with an external patch tool, provisions the language
runtime the client needs, overlays optional add-on content and launches
the client.

Key modules:
- core: Pipeline components, configuration, types and the orchestrator
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "patchline contributors"

# Re-export commonly used types
from patchline.core.types import (
    Channel,
    ContentManifestEntry,
    ProgressUpdate,
    VersionCheckResult,
)

__all__ = [
    "__version__",
    "__author__",
    "Channel",
    "ContentManifestEntry",
    "ProgressUpdate",
    "VersionCheckResult",
]
