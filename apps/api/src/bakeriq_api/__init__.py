"""BakerIQ API service."""
