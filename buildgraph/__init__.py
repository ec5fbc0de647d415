"""buildgraph - multi-project build-description compiler.

Discovers projects on disk, configures them through sandboxed ``build.lua``
scripts, resolves their dependencies into a deterministic build order and
derives the link/initialization decisions consumed by solution generators.
"""

__version__ = "0.1.0"
