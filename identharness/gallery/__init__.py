"""Enrollment database storage and the live gallery index."""

from identharness.gallery.edb import (
    EnrollmentDatabaseWriter,
    load_templates,
    merge_enrollment_shards,
    read_edb_entries,
    read_manifest,
    shard_pairs,
    validate_enrollment_database,
)
from identharness.gallery.store import GalleryStore, finalize, initialize_identification

__all__ = [
    "EnrollmentDatabaseWriter",
    "GalleryStore",
    "finalize",
    "initialize_identification",
    "load_templates",
    "merge_enrollment_shards",
    "read_edb_entries",
    "read_manifest",
    "shard_pairs",
    "validate_enrollment_database",
]
