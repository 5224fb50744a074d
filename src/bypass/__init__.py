"""bypass: bulk-create Shortcut objectives, epics and stories from a file.

The CLI reads a YAML, CSV or Excel manifest and creates the resources in
dependency order:
- objectives first, then epics, then stories
- in-file names resolve to identifiers created earlier in the same run
- every outcome is streamed as text or JSON lines
"""

__version__ = "0.1.0"

from bypass.orchestrator.config import BypassSettings

__all__ = ["__version__", "BypassSettings"]
