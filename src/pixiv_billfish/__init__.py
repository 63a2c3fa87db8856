"""Pixiv2Billfish - sync Pixiv tags and descriptions into a Billfish library."""

__version__ = "0.1.0"
