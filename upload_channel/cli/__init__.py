"""Command line interface for upload-channel."""
