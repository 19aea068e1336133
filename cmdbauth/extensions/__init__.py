"""Projection of configuration entities onto policy engine resources.

- collector: batched, validated entity lookups
- tenancy: business id of a batch
- projector: resource descriptors with their parent layers
- audit: audit categories and audit list query conditions
"""
