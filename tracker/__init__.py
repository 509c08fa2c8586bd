"""Backend package: DB models, pipelines, APIs.

This package orchestrates extraction, graph persistence and the read
queries behind the calendar, timeline and knowledge views.
"""
