"""Signature checks, callback orchestration and notifications."""
