"""RentFlow - lease lifecycle and payment obligation engine."""

__version__ = "0.1.0"
