"""Bucket Bridge: one async client contract over several object storage services."""

__version__ = "0.1.0"
