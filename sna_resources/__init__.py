"""Bundled data for SafetyNet attestation verification."""
