"""
Hybrid retrieval question answering over ingested PDF documents.
"""
