"""Core modules for markerpack.

This package contains the pack compiler:
- content: hash-addressed blob storage, textures and trail binaries
- ingestion: zip reading and XML parsing into raw categories and records
- categories: category tree merging and template inheritance
- normalizer: asset binding and marker/trail normalization
- pack: the Pack aggregate, assembly and the collaborator query API
- serializers: JSON tree and binary archive readers/writers
"""
