"""Blog content API: listing, lookup and authoring of blog posts."""

__version__ = "0.1.0"
