"""v5sim - VEX V5 simulator protocol."""

__version__ = "0.1.0"
