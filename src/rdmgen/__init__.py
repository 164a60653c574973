"""Wick reduction of multireference operator strings into RDM task code."""

__version__ = "0.1.0"
