"""Pipelines for turning one program message into stored records.

Each step is callable independently: extraction lives in ``ai.extractor``,
persistence here, and ``processing`` chains the two for a request.
"""
