"""Database layer for the device store."""
