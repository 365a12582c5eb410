"""order-workflow: governed order updates and a fulfillment saga."""

__version__ = "0.1.0"
