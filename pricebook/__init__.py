"""Pricebook - bulk pricing-mode jobs for construction price books."""

__version__ = "0.1.0"
