"""Device telemetry sync: persisted intent, payload formatting, per-device loops."""
