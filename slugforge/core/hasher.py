"""Canonical hashing helpers for stage records and cache fingerprints."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from slugforge.models.fingerprint import CacheFingerprint


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True, default=str
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_output_hash(stage_id: str, outputs: dict[str, Any]) -> str:
    """SHA-256 of canonical(stage_id + sorted outputs).

    Stages that see the same context summary record the same hash. Once a
    build has recorded its runtime version, unchanged rebuilds repeat their
    stage hashes.
    """
    payload = {"stage_id": stage_id, "outputs": outputs}
    return sha256_hex(canonical_json_bytes(payload))


def fingerprint_digest(fingerprint: CacheFingerprint) -> str:
    """SHA-256 over the runtime key set and the version tags.

    Gem-manager versions are left out: they never decide a purge on their own.
    """
    payload = {
        "runtimes": sorted(fingerprint.runtime_keys),
        "pipeline_version": fingerprint.pipeline_version,
        "bundler_version": fingerprint.bundler_version,
    }
    return sha256_hex(canonical_json_bytes(payload))
