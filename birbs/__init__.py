"""birbs - bird detection statistics API and time-series publisher."""

__version__ = "1.0.0"
