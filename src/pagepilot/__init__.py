"""PagePilot - browser automation for MCP hosts."""

__version__ = "0.1.0"
__description__ = "Capability-gated browser automation tools served over MCP."

# Export key components
from pagepilot.config import load_config, Config

__all__ = ["load_config", "Config", "__version__"]
