"""
bitarchive - Private photo archive backed by a GitHub repository

A client library for keeping a personal photo collection in a private
repository, with features including:
- Content-addressed uploads with duplicate detection
- Bounded-concurrency gallery refresh from the repository listing
- Local cache of downloaded and uploaded images
- Quick setup of the backing repository from a personal access token
"""

__version__ = "0.1.0"
__author__ = "bitarchive"
__description__ = "Private photo archive backed by a GitHub repository"
