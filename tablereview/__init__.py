"""
Table-Driven Literature Review Pipeline

A Python pipeline that fills one structured table per source PDF, caches
each table on the source in Zotero, and asks Gemini to write a literature
review from the aggregated tables with inline citations linked back to
their sources.
"""

__version__ = "1.0.0"
