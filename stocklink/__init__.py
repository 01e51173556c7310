"""stocklink - keeps Shopify and Etsy stock levels in step."""

__version__ = "0.1.0"
