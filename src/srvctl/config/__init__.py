"""Configuration loading, validation and logging setup for srvctl."""
