"""
formsync - form definition reconciliation and submission pulling for
ODK Aggregate compatible servers.

Main packages:
- core: exceptions, data models, events and logging
- forms: XForm parsing, model tree and comparison
- storage: versioned per-form file store and file promotion
- reconcile: the form definition reconciler
- pull: pagination cursor, Aggregate connector and pull driver
- config: YAML configuration with environment overrides
"""

__version__ = "0.1.0"
