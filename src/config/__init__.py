"""Runtime configuration."""

from config.settings import EngineSettings  # noqa: F401
