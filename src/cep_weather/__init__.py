"""CEP Weather - postal code to temperature gateway and lookup services."""

__version__ = "1.0.0"
