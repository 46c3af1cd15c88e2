"""Escrow settlement engine for staked two-player matches."""

__version__ = "0.1.0"
