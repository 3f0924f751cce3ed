"""tether: JSON request execution and async polling for unreliable services."""

__version__ = "0.1.0"
