"""FlipEdge - a small fleet of LLM-guided crypto trading agents."""

__version__ = "0.1.0"
__author__ = "FlipEdge Team"
__description__ = "A small fleet of LLM-guided crypto trading agents"

__all__ = [
    "__version__",
    "__author__",
    "__description__",
]

# Load environment variables as early as possible
import os
from pathlib import Path

from dotenv import load_dotenv


def load_env_file_early() -> None:
    """Load environment variables from .env file at package import time.

    Looks for a .env file in the project root (two levels up from this file).

    Note:
        - Existing environment variables take precedence (override=False)
        - Debug output can be enabled via FLIPEDGE_DEBUG=true
    """
    current_dir = Path(__file__).parent
    project_root = current_dir.parent.parent
    env_file = project_root / ".env"
    debug = os.getenv("FLIPEDGE_DEBUG", "false").lower() == "true"

    if env_file.exists():
        load_dotenv(env_file, override=False)
        if debug:
            print(f"✓ Environment variables loaded from {env_file}")
    elif debug:
        print(f"ℹ️  No .env file found at {env_file}")


load_env_file_early()
