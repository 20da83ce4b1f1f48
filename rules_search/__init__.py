"""
Natural-language rules search over Azure AI Search.

This package contains the query interpretation (language model + rule-based
vocabulary), payload building, rule store access, response assembly and the
HTTP service that ties them together.
"""

__version__ = "0.1.0"
