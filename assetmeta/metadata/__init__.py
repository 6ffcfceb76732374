"""Readers, normalisers and enrichers that turn raw file tags into metadata records."""
