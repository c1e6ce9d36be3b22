"""Plugin descriptor read by the host's plugin loader.

The sampler itself never reads this at runtime.
"""

from dataclasses import dataclass

from . import __version__


@dataclass(frozen=True)
class PluginConfig:
    """Metadata shown in the host's plugin administration."""

    name: str
    version: str
    author: str
    front_end_path: str  # Front-end asset, relative to the host's plugin directory


PLUGIN_CONFIG = PluginConfig(
    name="Snapshot",
    version=__version__,
    author="Snapshot",
    front_end_path="snapshot/snapshot.js",
)
