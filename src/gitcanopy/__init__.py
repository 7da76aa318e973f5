"""GitCanopy - repository history as a live, laid-out commit graph."""

__version__ = "0.1.0"
