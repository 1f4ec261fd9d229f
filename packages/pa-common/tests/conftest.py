"""Shared setup for pa-common tests."""

from __future__ import annotations

import os

# Secrets have no defaults; set them before any settings are loaded.
os.environ.setdefault("PA_CODE_SECRET", "test-code-secret")
os.environ.setdefault("PA_API_KEY_HASH_SECRET", "test-hash-secret")
