"""revchain: linear schema migrations with a persisted head and history."""

__version__ = "0.1.0"

from .config import MigrationConfig

__all__ = ["MigrationConfig", "__version__"]
