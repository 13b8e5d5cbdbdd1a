"""Identifier generation utilities for saynote."""

import uuid
from typing import Optional


# Namespace UUID for saynote (generated once, fixed)
# This ensures deterministic UUID v5 generation across runs
SAYNOTE_NAMESPACE = uuid.UUID("8c5f1a52-3e0b-4d8e-9a61-2f7c04d9b1e3")


def generate_block_id() -> str:
    """
    Generate a random block id.

    Block ids are UUID v4 strings; they only need to be unique within one
    document but random UUIDs keep them unique across pages too, which makes
    copying blocks between pages safe.

    Returns:
        UUID string in standard format

    Example:
        >>> generate_block_id()
        "f47ac10b-58cc-4372-a567-0e02b2c3d479"
    """
    return str(uuid.uuid4())


def generate_page_id() -> str:
    """
    Generate a random page id.

    Page ids carry a ``page_`` prefix so they are distinguishable from block
    ids in logs and in persisted history.

    Returns:
        Page id string (e.g., "page_3f2a9c0d1e4b4a7f8c6d5e2b1a0f9e8d")
    """
    return f"page_{uuid.uuid4().hex}"


def generate_deterministic_id(content: str, namespace: Optional[uuid.UUID] = None) -> str:
    """
    Generate deterministic UUID v5 from content string.

    Same content always generates the same UUID; used by tests and by the
    sanitizer so re-sanitizing the same malformed payload is stable.

    Args:
        content: Content string to hash
        namespace: UUID namespace (defaults to SAYNOTE_NAMESPACE)

    Returns:
        UUID string in standard format
    """
    if namespace is None:
        namespace = SAYNOTE_NAMESPACE

    return str(uuid.uuid5(namespace, content))
