"""karaoke-scout: structured karaoke show extraction from pages and group photo feeds."""

__version__ = "0.1.0"
