"""Sample data and fixtures."""

from data.sample_home import create_sample_home

__all__ = ["create_sample_home"]
