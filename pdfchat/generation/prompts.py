"""Prompt templates for query expansion and answer generation."""

SYSTEM_MESSAGE = """You are a helpful assistant that answers questions based on the provided context.
When giving a response, always cite your sources using the format [1], [2], etc. corresponding to the document chunks provided."""

QUERY_EXPANSION_PROMPT = """Given the following user message, generate exactly {count} distinct search queries that cover different aspects of the message.
Each query should be a concise phrase optimized for information retrieval.
Return one query per line, without numbering, bullets or quotes.

User message: "{message}"

Generated queries:"""

CONTEXT_PREFIX = "Context from documents:\n"
