"""postlayout_pipeline - content brief import and generation pipeline.

Imports post layouts (content briefs) from Google Sheets, classifies them,
triggers n8n content generation and creates draft posts through the CMS API
in rate-limited sequential batches.
"""

__all__ = ["__version__"]

__version__ = "0.3.0"
