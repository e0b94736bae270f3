"""Prayer schedule state derived from Aladhan timings."""

__version__ = "0.3.0"
