"""Configuration, message model, text helpers and protocol utilities for chat bridges."""

__version__ = "0.1.0"