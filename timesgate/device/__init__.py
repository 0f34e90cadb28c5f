"""Divoom device protocol: LAN commands and cloud lookups."""
