"""Configuration, logging, retry and rate limiting."""
