"""PipraPay payment gateway adapter for the billing platform."""

__version__ = "1.0.0"
